import json
import sys
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()


if __name__ == "__main__":
    print("Running one auction-tracker pipeline pass...")

    from auction_tracker.db import Base, engine
    import auction_tracker.models  # noqa: F401
    from auction_tracker.pipeline import run_once

    Base.metadata.create_all(bind=engine)
    data = run_once()

    print(json.dumps(data.model_dump(mode="json"), indent=2))
    if data.errors:
        print(f"Finished with {len(data.errors)} error(s).")
    sys.exit(0)

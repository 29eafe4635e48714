from postrelay.auth import create_access_token
from postrelay.database import SessionLocal, engine, Base
from postrelay.models import ScheduledJob, SocialAccount

# Create tables
Base.metadata.create_all(bind=engine)

db = SessionLocal()

OWNER_ID = "dev-owner"

# Clear existing data
db.query(ScheduledJob).delete()
db.query(SocialAccount).delete()

# Linked accounts the delivery gateway will be called with
accounts = [
    SocialAccount(owner_id=OWNER_ID, platform="twitter", access_token="dev-twitter-token"),
    SocialAccount(owner_id=OWNER_ID, platform="linkedin", access_token="dev-linkedin-token"),
    SocialAccount(owner_id=OWNER_ID, platform="instagram", access_token="dev-instagram-token"),
]

db.add_all(accounts)
db.commit()

print("Database seeded successfully!")
print(f"  - {len(accounts)} social accounts for {OWNER_ID}")
print(f"  - Bearer token: {create_access_token({'sub': OWNER_ID})}")

db.close()

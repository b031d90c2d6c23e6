from datetime import timedelta

from app import create_app, parking_service
from models import db, utcnow

DEMO_OWNER = 'demo-owner'


def seed():
    app = create_app()
    with app.app_context():
        service = parking_service()

        if not service.settings.get(DEMO_OWNER):
            service.settings.upsert(DEMO_OWNER, hourly_rate=20.0, currency='USD', auto_calculate=True)
            print("Added settings for demo-owner: $20/hour")

        now = utcnow()
        for plate, hours_ago, stay_minutes in [('AB1234', 5, 125), ('CD5678', 3, 40), ('EF9012', 1, None)]:
            if service.sessions.search(DEMO_OWNER, plate):
                continue
            entry_time = now - timedelta(hours=hours_ago)
            service.record_entry(DEMO_OWNER, plate, timestamp=entry_time)
            if stay_minutes is not None:
                service.record_exit(DEMO_OWNER, plate, timestamp=entry_time + timedelta(minutes=stay_minutes))
            print(f"Added session for {plate}")

        db.session.commit()
        print("Database seeded!")


if __name__ == '__main__':
    seed()

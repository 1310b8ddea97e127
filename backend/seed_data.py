"""Create tables and seed default email category filters."""
from app.database import Base, SessionLocal, engine
from app.models import EmailFilter
import uuid

DEFAULT_FILTERS = [
    # Marketplaces and apps that always send notifications
    {'filter_type': 'domain', 'pattern': 'shopify.com', 'category': 'notifications'},
    {'filter_type': 'domain', 'pattern': 'judge.me', 'category': 'notifications'},
    {'filter_type': 'domain', 'pattern': 'shipstation.com', 'category': 'notifications'},
    {'filter_type': 'exact_email', 'pattern': 'wholesale@info.faire.com', 'category': 'promotional'},
    {'filter_type': 'domain', 'pattern': 'email.etsy.com', 'category': 'promotional'},
]


def seed():
    """Seed database with default email filters (idempotent)."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        created = 0
        for filter_data in DEFAULT_FILTERS:
            exists = db.query(EmailFilter).filter(
                EmailFilter.filter_type == filter_data['filter_type'],
                EmailFilter.pattern == filter_data['pattern'],
            ).first()
            if exists:
                continue
            db.add(EmailFilter(id=uuid.uuid4(), is_active=True, **filter_data))
            created += 1

        db.commit()
        print(f"✅ Database seeded successfully! ({created} email filters added)")

    except Exception as e:
        db.rollback()
        print(f"❌ Error seeding database: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()

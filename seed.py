import argparse
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
import bcrypt
from donorhub.models.all_models import Base, User, BloodBank, BloodInventory, BloodType, UserRole
from donorhub.config import settings
from donorhub.utils.clock import local_now

DEFAULT_HOURS = {
    day: {"open": "08:00", "close": "17:00", "closed": False}
    for day in ["monday", "tuesday", "wednesday", "thursday", "friday"]
}
DEFAULT_HOURS["saturday"] = {"open": "08:00", "close": "12:00", "closed": False}
DEFAULT_HOURS["sunday"] = {"closed": True}


def get_session(database_url=None):
    engine = create_engine(database_url or settings.DATABASE_URL)
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    return Session()


def create_admin_user(session, email, password):
    existing_user = session.query(User).filter_by(email=email).first()
    if existing_user:
        print(f"Error: User with email {email} already exists")
        return None

    hashed_password = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')
    new_user = User(
        email=email,
        password=hashed_password,
        role=UserRole.ADMIN,
        is_active=True,
        created_at=local_now(),
        updated_at=local_now()
    )
    session.add(new_user)
    session.commit()

    print(f"Admin user created successfully: {email}")
    return new_user


def create_demo_blood_bank(session, name, capacity, units, latitude=None, longitude=None):
    """Blood bank open weekdays and Saturday mornings, stocked with every blood type."""
    bank = BloodBank(
        name=name,
        operating_hours=DEFAULT_HOURS,
        capacity=capacity,
        is_active=True,
        latitude=latitude,
        longitude=longitude
    )
    session.add(bank)
    session.flush()

    for blood_type in BloodType:
        session.add(BloodInventory(
            blood_bank_id=bank.id,
            blood_type=blood_type,
            units_available=units,
            units_reserved=0,
            minimum_threshold=settings.DEFAULT_MINIMUM_THRESHOLD
        ))
    session.commit()

    print(f"Blood bank created: {name} ({bank.id})")
    return bank


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the database with an admin user and demo data")
    parser.add_argument("--email", required=True, help="Admin email address")
    parser.add_argument("--password", required=True, help="Admin password")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL")
    parser.add_argument("--demo-bank", default=None, help="Name of a demo blood bank to create")
    parser.add_argument("--capacity", type=int, default=20, help="Demo bank capacity")
    parser.add_argument("--units", type=int, default=25, help="Units stocked per blood type")
    parser.add_argument("--latitude", type=float, default=None)
    parser.add_argument("--longitude", type=float, default=None)

    args = parser.parse_args()

    session = get_session(args.database_url)
    try:
        create_admin_user(session, args.email, args.password)
        if args.demo_bank:
            create_demo_blood_bank(
                session, args.demo_bank, args.capacity, args.units, args.latitude, args.longitude
            )
    except Exception as e:
        session.rollback()
        print(f"Error seeding database: {str(e)}")
    finally:
        session.close()

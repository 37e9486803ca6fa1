import uuid
from sqlalchemy.orm import Session

from app.models.user import User
from app.models.business import Business, LISTING_APPROVED, LISTING_PENDING
from app.models.connection_request import ConnectionRequest
from app.models.chat_room import ChatRoom
from app.models.chat_message import ChatMessage
from app.models.notification import Notification
from app.services import connection_requests, message_channel


def seed_db(db: Session) -> None:
    """Seed the database with sample data."""

    # Clear existing data (optional - comment out if you want to preserve data)
    db.query(Notification).delete()
    db.query(ChatMessage).delete()
    db.query(ChatRoom).delete()
    db.query(ConnectionRequest).delete()
    db.query(Business).delete()
    db.query(User).delete()
    db.commit()

    # Create Users (external_auth_uid required; 1:1 with Supabase auth)
    owner = User(
        id=uuid.uuid4(),
        external_auth_uid="11111111-1111-1111-1111-111111111111",
        email="alice@example.com",
    )
    buyer = User(
        id=uuid.uuid4(),
        external_auth_uid="22222222-2222-2222-2222-222222222222",
        email="bob@example.com",
    )
    admin = User(
        id=uuid.uuid4(),
        external_auth_uid="33333333-3333-3333-3333-333333333333",
        email="admin@example.com",
        is_admin=True,
    )
    db.add_all([owner, buyer, admin])
    db.commit()

    # Create Businesses
    bakery = Business(
        id=uuid.uuid4(),
        owner_id=owner.id,
        name="Boulangerie du Coin",
        category="bakery",
        city="Montreal",
        province="QC",
        status=LISTING_APPROVED,
    )
    farm = Business(
        id=uuid.uuid4(),
        owner_id=owner.id,
        name="Ferme Lavoie",
        category="farm",
        city="Sherbrooke",
        province="QC",
        status=LISTING_PENDING,
    )
    db.add_all([bakery, farm])
    db.commit()

    # Accepted request: room, decision notification and a short conversation
    accepted_id = connection_requests.request_connection(
        db, buyer, bakery.id, "Hi! Do you supply bread to local cafés?"
    )
    outcome = connection_requests.decide(db, owner, accepted_id, "accept")
    message_channel.send(db, buyer, outcome.room_id, "Hello")
    message_channel.send(db, owner, outcome.room_id, "Hi")

    # Pending request waiting in the owner's inbox
    connection_requests.request_connection(db, buyer, farm.id, "Interested in your seasonal produce boxes.")

    print("Seeded database with:")
    print(f"  - {db.query(User).count()} users")
    print(f"  - {db.query(Business).count()} businesses")
    print(f"  - {db.query(ConnectionRequest).count()} connection requests")
    print(f"  - {db.query(ChatRoom).count()} chat rooms")
    print(f"  - {db.query(ChatMessage).count()} chat messages")
    print(f"  - {db.query(Notification).count()} notifications")

import os
from werkzeug.security import generate_password_hash

from eventhub import create_app
from eventhub.extensions import db
from eventhub.models import User
from eventhub.models.enums import UserRole


def create_admin_user(update=False):
    email = os.getenv("ADMIN_EMAIL", "admin@example.com").lower()
    password = os.getenv("ADMIN_PASSWORD", "admin123")

    app = create_app()
    with app.app_context():
        admin = User.query.filter_by(email=email).first()
        if not admin:
            admin = User(
                email=email,
                password=generate_password_hash(password),
                role=UserRole.ADMIN,
                first_name="Admin",
                last_name="User",
            )
            db.session.add(admin)
            db.session.commit()
            print("Admin user created successfully!")
        elif update:
            admin.password = generate_password_hash(password)
            admin.role = UserRole.ADMIN
            db.session.commit()
            print("Admin user updated successfully!")
        else:
            print("Admin user already exists!")


if __name__ == "__main__":
    create_admin_user(update=True)

from sqlalchemy import select

from nova_api.models.user import User, UserRole
from nova_api.scripts import main


def test_create_admin_command(db):
    argv = ["create-admin", "--name", "Ops", "--email", "Ops@Nova.rw", "--phone", "+250722000999", "--password", "pw123456"]
    assert main(argv) == 0

    admin = db.scalar(select(User).where(User.email == "ops@nova.rw"))
    assert admin.role == UserRole.admin
    assert admin.is_verified is True

    assert main(argv) == 1


def test_init_db_command():
    assert main(["init-db"]) == 0


def test_created_admin_can_log_in(client):
    main(["create-admin", "--name", "Ops", "--email", "ops2@nova.rw", "--phone", "+250722000998", "--password", "pw123456"])
    resp = client.post("/api/auth/login", json={"email": "ops2@nova.rw", "password": "pw123456"})
    assert resp.status_code == 200
    assert resp.json()["user"]["role"] == "admin"

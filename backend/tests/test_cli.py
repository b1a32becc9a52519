# Overview: Pytest coverage for the flask CLI command groups.

from salesdesk.models import Account, User
from salesdesk.services import audit_service, sales_service


def test_create_account_and_user(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["accounts", "create", "--name", "Harbour Fish"])
    assert result.exit_code == 0
    assert "Harbour Fish" in result.output
    account = db_session.query(Account).filter_by(name="Harbour Fish").one()

    result = runner.invoke(args=[
        "users", "create", "--account-id", str(account.id),
        "--username", "kwame", "--password", "Password123", "--role", "admin",
    ])
    assert result.exit_code == 0
    assert db_session.query(User).filter_by(username="kwame").one().role == "admin"

    listing = runner.invoke(args=["users", "list", "--account-id", str(account.id)])
    assert "kwame" in listing.output


def test_create_user_errors_are_reported(app, db_session, worker_user):
    runner = app.test_cli_runner()

    duplicate = runner.invoke(args=[
        "users", "create", "--account-id", str(worker_user.account_id),
        "--username", "worker", "--password", "Password123",
    ])
    assert duplicate.exit_code != 0
    assert "already exists" in duplicate.output

    short = runner.invoke(args=[
        "users", "create", "--account-id", str(worker_user.account_id),
        "--username", "newbie", "--password", "short",
    ])
    assert short.exit_code != 0


def test_pending_queue(app, db_session, account, worker_user, product):
    runner = app.test_cli_runner()
    assert "No pending change requests." in runner.invoke(args=["audits", "pending"]).output

    sale = sales_service.create_sale(account.id, worker_user.id, {
        "product_id": product.id,
        "boxes_quantity": 2,
        "payment_method": "cash",
        "payment_status": "paid",
    })
    audit_service.propose_deletion(account.id, sale.id, "Entered twice", worker_user.id)

    result = runner.invoke(args=["audits", "pending", "--account-id", str(account.id)])
    assert result.exit_code == 0
    assert "deletion" in result.output
    assert "Entered twice" in result.output

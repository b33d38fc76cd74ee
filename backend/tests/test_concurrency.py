"""Transaction boundary behaviour of atomic()."""

import pytest

from invoicing.extensions import db
from invoicing.models import Client
from invoicing.services.concurrency import StorageError, atomic


def test_commit_on_success(db_session):
    with atomic(db_session, "create_client"):
        db_session.add(Client(name="Gamma"))

    db_session.expire_all()
    assert db_session.query(Client).filter_by(name="Gamma").count() == 1


def test_store_failure_becomes_storage_error(db_session):
    with pytest.raises(StorageError) as exc:
        with atomic(db_session, "create_client"):
            db_session.add(Client(name="Delta"))
            db_session.add(Client(name=None))
            db_session.flush()

    assert exc.value.operation == "create_client"
    assert db.session.query(Client).count() == 0


def test_other_errors_roll_back_and_propagate(db_session):
    with pytest.raises(KeyError):
        with atomic(db_session, "create_client"):
            db_session.add(Client(name="Epsilon"))
            db_session.flush()
            raise KeyError("boom")

    assert db.session.query(Client).count() == 0

"""Integration tests: accept and remove racing on one server never overfill its shares."""

import threading
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from marketplace.errors import AppError, ConflictError
from marketplace.models import Base, Server, ServerBillingShare, ShareStatus, User
from marketplace.services import create_db_engine
from marketplace.services.notification_service import MockTransport, NotificationService
from marketplace.services.split_billing_service import SplitBillingService


@pytest.fixture
def file_db(tmp_path):
    """Session factory on a file database shared by several threads."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'shares.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def _service(session) -> SplitBillingService:
    return SplitBillingService(session, notifier=NotificationService(MockTransport()))


def _setup(Session, joiners: int):
    """Owner, a server and one invitation per joiner. Returns ids and tokens."""
    with Session() as session:
        owner = User(username="owner", email="owner@example.com")
        users = [
            User(username=f"joiner{n}", email=f"joiner{n}@example.com") for n in range(joiners)
        ]
        session.add_all([owner, *users])
        session.commit()
        server = Server(name="Race SMP", owner_id=owner.id)
        session.add(server)
        session.commit()

        ids = {"owner": owner.id, "server": server.id, "users": [u.id for u in users]}
        tokens = [
            _service(session).send_invitation(ids["server"], owner, f"joiner{n}@example.com").token
            for n in range(joiners)
        ]
    return ids, tokens


def _run_concurrently(*actions) -> list[str]:
    barrier = threading.Barrier(len(actions))
    outcomes: dict[int, str] = {}
    lock = threading.Lock()

    def run(index, action):
        barrier.wait()
        try:
            action()
            result = "ok"
        except ConflictError:
            result = "conflict"
        except AppError as e:
            result = type(e).__name__
        with lock:
            outcomes[index] = result

    threads = [
        threading.Thread(target=run, args=(index, action)) for index, action in enumerate(actions)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return [outcomes.get(index) for index in range(len(actions))]


def _active_shares(Session, server_id) -> dict[int, Decimal]:
    with Session() as session:
        return {
            share.user_id: Decimal(share.share_percentage)
            for share in session.execute(
                select(ServerBillingShare).where(
                    ServerBillingShare.server_id == server_id,
                    ServerBillingShare.status == ShareStatus.ACTIVE,
                )
            ).scalars()
        }


class TestConcurrentAccepts:
    """Two invitees accepting at once: only one becomes the co-payer."""

    def test_only_one_of_two_racing_accepts_succeeds(self, file_db):
        ids, tokens = _setup(file_db, joiners=2)

        def accept(n):
            def action():
                with file_db() as session:
                    user = session.get(User, ids["users"][n])
                    _service(session).accept_invitation(tokens[n], user)

            return action

        outcomes = _run_concurrently(accept(0), accept(1))

        assert sorted(outcomes) == ["conflict", "ok"]
        winner = ids["users"][outcomes.index("ok")]
        assert _active_shares(file_db, ids["server"]) == {
            ids["owner"]: Decimal("50.00"),
            winner: Decimal("50.00"),
        }


class TestAcceptAgainstRemove:
    """Removing the current co-payer while another invitee accepts."""

    def test_shares_never_exceed_one_hundred(self, file_db):
        ids, tokens = _setup(file_db, joiners=2)
        current, newcomer = ids["users"]
        with file_db() as session:
            _service(session).accept_invitation(tokens[0], session.get(User, current))

        def remove():
            with file_db() as session:
                owner = session.get(User, ids["owner"])
                _service(session).remove_share(ids["server"], current, owner)

        def accept():
            with file_db() as session:
                user = session.get(User, newcomer)
                _service(session).accept_invitation(tokens[1], user)

        removed, accepted = _run_concurrently(remove, accept)

        assert removed == "ok"
        shares = _active_shares(file_db, ids["server"])
        if accepted == "ok":
            assert shares == {ids["owner"]: Decimal("50.00"), newcomer: Decimal("50.00")}
        else:
            assert accepted == "conflict"
            assert shares == {ids["owner"]: Decimal("100.00")}
        assert sum(shares.values()) == Decimal("100.00")

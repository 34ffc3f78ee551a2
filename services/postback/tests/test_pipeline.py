from datetime import datetime, timedelta
from itertools import permutations

from classifier import classify
from errors import UnstorablePayload
from models import PostbackEvent, TraderStatus
from payload import normalize_payload
from pipeline import process_postback, replay_trader
from schemas import EventKind
from store import SqlStatusStore

T0 = datetime(2024, 5, 1, 12, 0, 0)


def test_registration_postback_creates_status(store) -> None:
    result = process_postback(store, {"reg": "1", "conf": "false", "trader_id": "U1"})

    assert result.accepted is True
    assert result.event_kind == EventKind.REG
    assert result.registered is True
    assert result.deposited is False
    assert result.reconciled is True
    assert result.skip_reason is None
    assert result.event_id is not None

    status = store.get("U1")
    assert status.registered is True
    assert status.deposited is False
    assert result.status == status


def test_missing_trader_id_is_logged_but_status_untouched(store, db) -> None:
    result = process_postback(store, {"ftd": "1", "sumdep": "30"})

    assert result.accepted is True
    assert result.event_kind == EventKind.FTD
    assert result.deposited is True
    assert result.reconciled is False
    assert result.skip_reason == "missing_trader_id"
    assert result.status is None

    assert db.query(PostbackEvent).count() == 1
    assert db.query(TraderStatus).count() == 0


def test_malformed_fields_do_not_fail_the_call(store) -> None:
    result = process_postback(
        store, {"trader_id": "U5", "reg": "maybe", "sumdep": "lots", "dep": None}
    )

    assert result.accepted is True
    assert result.event_kind == EventKind.OTHER
    assert result.reconciled is True
    assert store.get("U5").last_deposit_amount is None


def test_example_sequence_in_any_order(session_factory) -> None:
    postbacks = [
        ({"reg": True}, 0),
        ({"ftd": True, "sumDep": 50}, 10),
        ({"conf": True}, 20),
    ]

    for order in permutations(postbacks):
        db = session_factory()
        try:
            store = SqlStatusStore(db)
            trader_id = "P-" + "-".join(str(minutes) for _, minutes in order)
            for raw, minutes in order:
                process_postback(
                    store,
                    {"trader_id": trader_id, **raw},
                    received_at=T0 + timedelta(minutes=minutes),
                )

            status = store.get(trader_id)
            assert status.registered is True
            assert status.deposited is True
            assert status.last_deposit_amount == 50
            assert status.ftd_at == T0 + timedelta(minutes=10)
        finally:
            db.close()


def test_replay_rebuilds_status_after_crash(store) -> None:
    # журнал записан, а до обновления статуса процесс не дошёл
    for raw, minutes in (({"reg": 1}, 0), ({"ftd": 1, "sumdep": 40}, 5), ({"conf": 1}, 9)):
        payload = normalize_payload({"trader_id": "U8", **raw})
        store.insert_audit_event(classify(payload, received_at=T0 + timedelta(minutes=minutes)))
    assert store.get("U8") is None

    replayed, status = replay_trader(store, "U8")

    assert replayed == 3
    assert status.registered is True
    assert status.email_confirmed is True
    assert status.deposited is True
    assert status.ftd_at == T0 + timedelta(minutes=5)
    assert status.last_deposit_amount == 40
    assert status.last_event == EventKind.CONF
    assert store.get("U8") == status


def test_replay_is_idempotent_over_live_status(store) -> None:
    process_postback(store, {"trader_id": "U9", "ftd": 1, "sumdep": 20}, received_at=T0)
    process_postback(
        store, {"trader_id": "U9", "reg": 1}, received_at=T0 + timedelta(minutes=1)
    )
    live = store.get("U9")

    replayed, rebuilt = replay_trader(store, "U9")

    assert replayed == 2
    assert rebuilt == live


def test_replay_unknown_trader_is_noop(store) -> None:
    assert replay_trader(store, "ghost") == (0, None)


class RejectingJournal:
    def insert_audit_event(self, event):
        raise UnstorablePayload("value rejected")


class RejectingStatusStore(SqlStatusStore):
    def upsert_merge(self, trader_id, merge_fn):
        raise UnstorablePayload("value rejected")


def test_unstorable_event_is_dropped_without_failing() -> None:
    result = process_postback(RejectingJournal(), {"trader_id": "U1", "reg": "1"})

    assert result.accepted is False
    assert result.skip_reason == "unstorable"
    assert result.event_kind == EventKind.REG
    assert result.event_id is None


def test_unstorable_status_keeps_journal_row(db) -> None:
    store = RejectingStatusStore(db)

    result = process_postback(store, {"trader_id": "U2", "dep": "1"})

    assert result.accepted is True
    assert result.reconciled is False
    assert result.skip_reason == "unstorable"
    assert result.event_id is not None
    assert db.query(PostbackEvent).count() == 1
    assert db.query(TraderStatus).count() == 0

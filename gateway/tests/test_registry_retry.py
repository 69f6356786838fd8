from gateway.sessions import BackoffPolicy, RetryLedger, SessionRegistry


class _Session:
    def __init__(self, name: str) -> None:
        self.name = name


def test_registry_remove_with_expected_only_drops_that_instance():
    registry = SessionRegistry()
    old, new = _Session("old"), _Session("new")
    registry.put("s1", new)

    assert registry.remove("s1", expected=old) is None
    assert registry.get("s1") is new
    assert registry.remove("s1", expected=new) is new
    assert not registry.contains("s1")


def test_registry_for_each_tolerates_removal():
    registry = SessionRegistry()
    for name in ("a", "b", "c"):
        registry.put(name, _Session(name))
    seen = []

    def _visit(session_id, session):
        seen.append(session_id)
        registry.remove(session_id)

    registry.for_each(_visit)

    assert sorted(seen) == ["a", "b", "c"]
    assert len(registry) == 0


def test_backoff_doubles_until_cap():
    policy = BackoffPolicy(base=1.0, cap=30.0)

    delays = [policy.delay(attempt) for attempt in range(1, 8)]

    assert delays == [2.0, 4.0, 8.0, 16.0, 30.0, 30.0, 30.0]
    assert delays == sorted(delays)


def test_retry_ledger_counts_and_clears():
    ledger = RetryLedger()

    assert ledger.attempts("s1") == 0
    assert ledger.increment("s1") == 1
    assert ledger.increment("s1") == 2
    assert ledger.snapshot() == {"s1": 2}

    ledger.clear("s1")

    assert not ledger.contains("s1")
    assert ledger.attempts("s1") == 0

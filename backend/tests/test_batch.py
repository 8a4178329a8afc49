from app.utils.batch import run_independent


def test_run_independent_settles_all():
    ran = []

    def ok(key):
        def _task():
            ran.append(key)
            return True

        return _task

    def boom():
        raise RuntimeError("locked")

    result = run_independent({"a": ok("a"), "b": boom, "c": lambda: False, "d": ok("d")})
    assert result.succeeded == ["a", "d"]
    assert result.failed == ["b", "c"]
    assert result.errors == {"b": "locked", "c": "no row updated"}
    assert not result.ok
    # A failing sibling never stops the others
    assert sorted(ran) == ["a", "d"]


def test_run_independent_empty():
    result = run_independent({})
    assert result.ok
    assert result.succeeded == []

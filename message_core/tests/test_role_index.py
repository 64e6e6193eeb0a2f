from message_core.resolution.role_index import count_preceding, role_index_of

from history_factory import alternating_log, make_log


def test_role_index_skips_first_mes():
    log = make_log([
        ("model", "greeting", 1, True),
        ("user", "hi", 2),
        ("model", "reply 1", 3),
        ("user", "again", 4),
        ("assistant", "reply 2", 5),
    ])
    assert role_index_of(log, 0, "model") == -1
    assert role_index_of(log, 2, "model") == 1
    assert role_index_of(log, 4, "model") == 2
    assert role_index_of(log, 1, "user") == 1
    assert role_index_of(log, 3, "user") == 2


def test_role_index_role_mismatch_and_out_of_range():
    log = make_log([("user", "hi", 1), ("model", "yo", 2)])
    assert role_index_of(log, 0, "model") == -1
    assert role_index_of(log, 1, "user") == -1
    assert role_index_of(log, 5, "user") == -1
    assert role_index_of(log, -1, "user") == -1


def test_role_index_strictly_increasing():
    log = alternating_log(41)
    for role in ("user", "model"):
        indices = [role_index_of(log, e.global_index, role) for e in log]
        counted = [i for i in indices if i != -1]
        assert counted == list(range(1, len(counted) + 1))


def test_count_preceding_matches_role_index():
    log = alternating_log(21)
    for e in log[1:]:
        role = "user" if e.role == "user" else "model"
        assert count_preceding(log, e.global_index, role) + 1 == role_index_of(log, e.global_index, role)

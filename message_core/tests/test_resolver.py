from message_core.domain.models import ClientMessage
from message_core.resolution.resolver import MessageResolver, ResolverConfig, resolve
from message_core.resolution.role_index import role_index_of

from history_factory import BASE_TS, alternating_log, make_log, make_view


def _short_log():
    return make_log([
        ("model", "greeting", BASE_TS, True),
        ("user", "hi", BASE_TS + 60_000),
        ("model", "reply one", BASE_TS + 120_000),
        ("user", "again", BASE_TS + 180_000),
        ("model", "reply two", BASE_TS + 240_000),
    ])


def test_exact_timestamp_match():
    log = _short_log()
    assert resolve(log, f"{BASE_TS + 240_000}-abc", "model") == 2
    assert resolve(log, f"conv_{BASE_TS + 180_000}_abc", "user") == 2


def test_close_timestamp_match():
    log = _short_log()
    assert resolve(log, f"{BASE_TS + 243_000}-abc", "model") == 2


def test_timestamp_too_far_is_not_found():
    log = _short_log()
    assert resolve(log, f"{BASE_TS + 260_000}-abc", "model") == -1


def test_timestamp_of_other_role_is_not_found():
    log = _short_log()
    assert resolve(log, f"{BASE_TS + 60_000}-abc", "model") == -1


def test_first_mes_is_never_resolved():
    log = _short_log()
    # 开场白不参与匹配，其余 AI 消息都在近似容差之外
    assert resolve(log, f"{BASE_TS}-abc", "model") == -1


def test_first_within_tolerance_wins_over_closer_match():
    log = make_log([
        ("model", "a", BASE_TS + 1_000),
        ("model", "b", BASE_TS + 1_300),
    ])
    assert resolve(log, f"{BASE_TS + 1_250}-x", "model") == 1


def test_content_match_uses_position_for_duplicates():
    log = make_log([
        ("model", "greeting", BASE_TS, True),
        ("user", "same", BASE_TS + 1),
        ("model", "ok", BASE_TS + 2),
        ("user", "same", BASE_TS + 3),
        ("model", "ok 2", BASE_TS + 4),
    ])
    view = make_view(log, id_prefix="v")
    assert resolve(log, "v-3", "user", view) == 2
    assert resolve(log, "v-1", "user", view) == 1


def test_content_match_excludes_flagged_first_mes_from_local_count():
    log = make_log([
        ("model", "greeting", BASE_TS, True),
        ("user", "q", BASE_TS + 1),
        ("model", "dup", BASE_TS + 2),
        ("user", "q2", BASE_TS + 3),
        ("model", "dup", BASE_TS + 4),
    ])
    view = make_view(log, id_prefix="v")
    view[0].metadata["is_first_mes"] = True
    assert resolve(log, "v-4", "model", view) == 2


def test_content_close_text_match():
    long_prefix = "x" * 120
    log = make_log([
        ("user", "hello", BASE_TS),
        ("model", long_prefix + "stored", BASE_TS + 1),
    ])
    view = [
        ClientMessage(id="u", text="hello", sender="user"),
        ClientMessage(id="m", text=long_prefix + "rendered", sender="bot"),
    ]
    assert resolve(log, "m", "model", view) == 1


def test_content_match_missing_target_falls_through():
    log = _short_log()
    view = make_view(log, id_prefix="v")
    assert resolve(log, "not-in-view", "model", view) == -1


def test_paginated_view_matches_on_text_only():
    log = alternating_log(85)
    page2 = make_view(log[25:55], id_prefix="p2")
    target = log[40]
    expected = role_index_of(log, 40, "model")
    assert expected == 20
    assert resolve(log, "p2-40", "model", page2) == expected


def test_pagination_invariance_for_unique_text():
    log = alternating_log(85)
    full = make_view(log, id_prefix="v")
    page = make_view(log[55:85], id_prefix="v")
    for gi in (56, 57, 70, 84):
        role = "user" if log[gi].role == "user" else "model"
        assert resolve(log, f"v-{gi}", role, page) == resolve(log, f"v-{gi}", role, full)


def test_recency_estimate_for_old_conversations():
    started = BASE_TS
    late = BASE_TS + 2 * 3_600_000
    log = make_log([
        ("user", "hi", started),
        ("model", "late reply", late),
    ])
    mid = f"{late + 15_000}-abc"
    assert resolve(log, mid, "model", conversation_id=str(started)) == 1
    assert resolve(log, mid, "model", conversation_id=str(late - 1_000)) == -1
    assert resolve(log, mid, "model") == -1


def test_unparseable_id_without_view_is_not_found():
    assert resolve(_short_log(), "garbage", "user") == -1


def test_empty_log_is_not_found():
    assert resolve([], f"{BASE_TS}-x", "user") == -1


def test_custom_strategy_pipeline():
    log = _short_log()
    assert MessageResolver(strategies=[("fixed", lambda ctx: 7)]).resolve(log, "x", "user") == 7
    assert MessageResolver(strategies=[("none", lambda ctx: None)]).resolve(log, f"{BASE_TS + 60_000}-x", "user") == -1


def test_custom_thresholds():
    log = _short_log()
    strict = MessageResolver(ResolverConfig(close_match_tolerance_ms=1_000))
    assert strict.resolve(log, f"{BASE_TS + 243_000}-abc", "model") == -1


def test_exact_tolerance_is_exclusive():
    log = make_log([
        ("model", "a", BASE_TS + 100_000),
        ("model", "b", BASE_TS + 100_800),
    ])
    # 第一条相差正好 500ms，不算精确匹配；第二条相差 300ms
    assert resolve(log, f"{BASE_TS + 100_500}-x", "model") == 2


def test_close_tolerance_is_exclusive():
    log = make_log([("model", "a", BASE_TS + 100_000)])
    assert resolve(log, f"{BASE_TS + 109_999}-x", "model") == 1
    assert resolve(log, f"{BASE_TS + 110_000}-x", "model") == -1


def test_recency_requires_conversation_older_than_an_hour():
    log = make_log([("model", "a", BASE_TS + 3_580_000)])
    cid = str(BASE_TS)
    assert resolve(log, f"{BASE_TS + 3_600_000}-x", "model", conversation_id=cid) == -1
    assert resolve(log, f"{BASE_TS + 3_600_001}-x", "model", conversation_id=cid) == 1


def test_recency_tolerance_is_exclusive():
    log = make_log([("model", "a", BASE_TS + 3_580_000)])
    cid = str(BASE_TS)
    assert resolve(log, f"{BASE_TS + 3_609_999}-x", "model", conversation_id=cid) == 1
    assert resolve(log, f"{BASE_TS + 3_610_000}-x", "model", conversation_id=cid) == -1


def test_page_size_boundary_switches_to_text_only():
    log = make_log([("user", "same text", BASE_TS + i * 60_000) for i in range(60)])

    page = make_view(log[10:], id_prefix="page")
    assert len(page) == 50
    # 分页视图只看文本，取第一条同文本消息
    assert resolve(log, page[5].id, "user", page) == 1

    wider = make_view(log[9:], id_prefix="page")
    assert len(wider) == 51
    # 超过单页大小时按 UI 内的相对位置匹配
    assert resolve(log, wider[5].id, "user", wider) == 6

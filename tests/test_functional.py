from parish.functional import Left, Right


def test_right_map_and_bind_chain():
    result = Right(2).map(lambda x: x * 10).bind(lambda x: Right(x + 1))
    assert result == Right(21)
    assert result.is_right()
    assert result.get_or_else(0) == 21


def test_left_short_circuits():
    called = []
    result = Left({"full_name": "Full name is required"}).map(called.append).bind(called.append)
    assert called == []
    assert result.is_left()
    assert result.get_error() == {"full_name": "Full name is required"}
    assert result.get_or_else("fallback") == "fallback"


def test_bind_can_turn_right_into_left():
    result = Right(5).bind(lambda x: Left({"general": "declined"}) if x > 3 else Right(x))
    assert result == Left({"general": "declined"})
    assert result != Right(5)


def test_right_has_no_error():
    try:
        Right(1).get_error()
    except ValueError:
        pass
    else:
        assert False, "expected ValueError"

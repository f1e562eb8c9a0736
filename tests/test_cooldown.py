from videoos_monitor.cooldown import CooldownGovernor


def test_first_poll_always_refreshes(clock):
    governor = CooldownGovernor(control_cooldown=5, poll_interval=60, clock=clock)
    assert governor.should_refresh()


def test_poll_interval_suppresses_refresh(clock):
    governor = CooldownGovernor(control_cooldown=5, poll_interval=60, clock=clock)
    governor.mark_full_poll()

    clock.advance(59.9)
    assert governor.within_poll_interval()
    assert not governor.should_refresh()

    clock.advance(0.2)
    assert governor.should_refresh()


def test_control_write_suppresses_refresh_even_after_poll_interval(clock):
    governor = CooldownGovernor(control_cooldown=5, poll_interval=60, clock=clock)
    governor.mark_full_poll()
    clock.advance(58)
    governor.mark_control_write()

    clock.advance(3)   # 61s since the poll, 3s since the write
    assert not governor.within_poll_interval()
    assert governor.in_control_cooldown()
    assert not governor.should_refresh()

    clock.advance(2)
    assert governor.should_refresh()

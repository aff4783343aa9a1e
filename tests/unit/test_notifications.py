from photocheck.services.notifications import NotificationCenter


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class TestNotificationCenter:
    def test_show_and_read(self) -> None:
        center = NotificationCenter(5.0, clock=FakeClock())
        shown = center.show("Hello", "warning")
        current = center.current()
        assert current == shown
        assert current.level == "warning"

    def test_expires_after_lifetime(self) -> None:
        clock = FakeClock()
        center = NotificationCenter(5.0, clock=clock)
        center.show("Bye", "error")
        clock.now += 4.9
        assert center.current() is not None
        clock.now += 0.1
        assert center.current() is None

    def test_new_notification_replaces_old(self) -> None:
        center = NotificationCenter(5.0, clock=FakeClock())
        first = center.show("first")
        second = center.show("second", "error")
        assert center.current() == second
        assert second.id != first.id

    def test_dismiss_only_matching_id(self) -> None:
        center = NotificationCenter(5.0, clock=FakeClock())
        first = center.show("first")
        second = center.show("second")
        center.dismiss(first.id)
        assert center.current() == second
        center.dismiss(second.id)
        assert center.current() is None

    def test_zero_lifetime_never_expires(self) -> None:
        clock = FakeClock()
        center = NotificationCenter(0, clock=clock)
        center.show("sticky")
        clock.now += 10_000
        assert center.current() is not None

    def test_clear(self) -> None:
        center = NotificationCenter(5.0, clock=FakeClock())
        center.show("gone soon")
        center.clear()
        assert center.current() is None

from datetime import datetime, timedelta


class FakeClock:
    """Controllable replacement for scheduling_now()."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)

    def kinds_for(self, user_id):
        return [e.kind for e in self.events if e.recipient_id == user_id]

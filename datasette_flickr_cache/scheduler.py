import json
import random
import time

class WarmerState:
    """The warmer's single row of schedule state in dfc_warmer_state."""

    def __init__(self, conn, clock=time.time, rng=random.random):
        self.conn = conn
        self.clock = clock
        self.rng = rng
        with self.conn:
            self.conn.execute('INSERT OR IGNORE INTO dfc_warmer_state(id) VALUES (1)')

    def _get(self, column):
        row = self.conn.execute('SELECT {} FROM dfc_warmer_state WHERE id = 1'.format(column)).fetchone()
        return row[0] if row else None

    def _set(self, column, value):
        with self.conn:
            self.conn.execute('UPDATE dfc_warmer_state SET {} = ? WHERE id = 1'.format(column), [value])

    def next_run_at(self):
        return self._get('next_run_at')

    def is_due(self):
        next_run_at = self.next_run_at()
        return next_run_at is None or next_run_at <= self.clock()

    def with_jitter(self, delay, fraction):
        if delay <= 0 or fraction <= 0:
            return delay

        spread = delay * fraction
        return max(0, delay + (self.rng() * 2 - 1) * spread)

    def schedule_next(self, delay, jitter_fraction=0.0):
        """Schedule the next run, unless an earlier one is already pending."""
        now = self.clock()
        ts = now + self.with_jitter(delay, jitter_fraction)
        existing = self.next_run_at()
        if existing is not None and now < existing <= ts:
            return existing

        self._set('next_run_at', ts)
        return ts

    def reschedule(self, delay, jitter_fraction=0.0):
        ts = self.clock() + self.with_jitter(delay, jitter_fraction)
        self._set('next_run_at', ts)
        return ts

    def pause_until(self):
        return self._get('pause_until')

    def is_paused(self):
        until = self.pause_until()
        return until is not None and until > self.clock()

    def pause(self, seconds):
        until = self.clock() + seconds
        self._set('pause_until', until)
        return until

    def clear_pause(self):
        self._set('pause_until', None)

    def last_run(self):
        value = self._get('last_run')
        return json.loads(value) if value else None

    def record_run(self, processed, rate_limited, last_error=None):
        self._set('last_run', json.dumps({
            'ts': self.clock(),
            'processed': processed,
            'rate_limited': rate_limited,
            'last_error': last_error,
        }))

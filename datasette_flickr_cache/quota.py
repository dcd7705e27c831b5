import logging
import time

logger = logging.getLogger(__name__)

def hour_window(ts):
    return time.strftime('%Y%m%d%H', time.gmtime(ts))

class QuotaTracker:
    """Counts API calls per UTC hour against a hard ceiling."""

    def __init__(self, conn, hourly_cap=3550, clock=time.time):
        self.conn = conn
        self.hourly_cap = hourly_cap
        self.clock = clock

    def current_count(self):
        row = self.conn.execute('SELECT count FROM dfc_quota WHERE hour = ?', [hour_window(self.clock())]).fetchone()
        if not row:
            return 0

        return row[0]

    def can_make_call(self):
        count = self.current_count()
        logger.debug('quota check: %s/%s', count, self.hourly_cap)

        if count >= self.hourly_cap:
            logger.warning('hourly API cap reached (%s/%s), refusing call', count, self.hourly_cap)
            return False

        return True

    def remaining(self):
        return max(0, self.hourly_cap - self.current_count())

    def increment(self):
        window = hour_window(self.clock())
        with self.conn:
            self.conn.execute(
                'INSERT INTO dfc_quota(hour, count) VALUES (?, 1) ON CONFLICT(hour) DO UPDATE SET count = count + 1',
                [window]
            )
            self.conn.execute('DELETE FROM dfc_quota WHERE hour < ?', [window])

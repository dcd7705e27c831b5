import json
import logging
import time
from collections import namedtuple
from more_itertools import batched
from .errors import FlickrCacheError

logger = logging.getLogger(__name__)

JOB_TYPES = ('photo', 'album', 'photostream')

Job = namedtuple('Job', ['job_key', 'job_type', 'payload', 'priority'], defaults=(None, 0))

JobRow = namedtuple('JobRow', ['id', 'job_key', 'job_type', 'payload', 'priority', 'not_before', 'attempts', 'last_error', 'status', 'created_at', 'updated_at'])

_COLUMNS = 'id, job_key, job_type, payload, priority, not_before, attempts, last_error, status, created_at, updated_at'

def _row(row):
    if not row:
        return None

    row = list(row)
    row[3] = json.loads(row[3])
    return JobRow(*row)

class JobQueue:
    """Durable work queue in dfc_job, deduplicated by job_key."""

    def __init__(self, conn, retry_backoff_step=900, retry_backoff_cap=6 * 3600, clock=time.time):
        self.conn = conn
        self.retry_backoff_step = retry_backoff_step
        self.retry_backoff_cap = retry_backoff_cap
        self.clock = clock

    def backoff(self, attempts):
        return min(self.retry_backoff_cap, max(1, attempts) * self.retry_backoff_step)

    def upsert(self, job):
        if job.job_type not in JOB_TYPES:
            raise FlickrCacheError('unknown job type: {}'.format(job.job_type))

        if not job.job_key:
            raise FlickrCacheError('job_key is required')

        now = self.clock()
        with self.conn:
            # A pending row keeps its backoff; a finished row starts over.
            self.conn.execute(
                """
INSERT INTO dfc_job(job_key, job_type, payload, priority, status, created_at, updated_at)
VALUES (?, ?, ?, ?, 'pending', ?, ?)
ON CONFLICT(job_key) DO UPDATE SET
  job_type = excluded.job_type,
  payload = excluded.payload,
  priority = excluded.priority,
  attempts = CASE WHEN status = 'pending' THEN attempts ELSE 0 END,
  last_error = CASE WHEN status = 'pending' THEN last_error ELSE NULL END,
  not_before = CASE WHEN status = 'pending' THEN not_before ELSE NULL END,
  status = 'pending',
  updated_at = excluded.updated_at
""",
                [job.job_key, job.job_type, json.dumps(job.payload or {}, sort_keys=True), job.priority, now, now]
            )

    def get(self, job_key):
        return _row(self.conn.execute('SELECT {} FROM dfc_job WHERE job_key = ?'.format(_COLUMNS), [job_key]).fetchone())

    def dequeue_due(self, limit=None):
        sql = "SELECT {} FROM dfc_job WHERE status = 'pending' AND (not_before IS NULL OR not_before <= ?) ORDER BY priority DESC, created_at ASC, id ASC".format(_COLUMNS)
        args = [self.clock()]
        if limit is not None:
            sql += ' LIMIT ?'
            args.append(int(limit))

        return [_row(row) for row in self.conn.execute(sql, args).fetchall()]

    def mark_result(self, job_key, success, error=None):
        now = self.clock()

        if success:
            with self.conn:
                self.conn.execute(
                    "UPDATE dfc_job SET status = 'done', last_error = NULL, not_before = NULL, attempts = 0, updated_at = ? WHERE job_key = ?",
                    [now, job_key]
                )
            return

        row = self.conn.execute('SELECT attempts, not_before FROM dfc_job WHERE job_key = ?', [job_key]).fetchone()
        if not row:
            return

        attempts, prev = row
        attempts += 1
        not_before = now + self.backoff(attempts)
        if prev is not None and not_before <= prev:
            not_before = prev + 1

        logger.warning('job %s failed (attempt %s), retrying after %.0fs: %s', job_key, attempts, not_before - now, error)
        with self.conn:
            self.conn.execute(
                "UPDATE dfc_job SET status = 'pending', attempts = ?, last_error = ?, not_before = ?, updated_at = ? WHERE job_key = ?",
                [attempts, error, not_before, now, job_key]
            )

    def defer(self, job_key, not_before=None, error=None):
        """Push a job back without counting an attempt."""
        with self.conn:
            self.conn.execute(
                "UPDATE dfc_job SET status = 'pending', not_before = ?, last_error = COALESCE(?, last_error), updated_at = ? WHERE job_key = ?",
                [not_before, error, self.clock(), job_key]
            )

    def delete(self, job_key):
        with self.conn:
            self.conn.execute('DELETE FROM dfc_job WHERE job_key = ?', [job_key])

    def delete_missing(self, keep_keys):
        keep_keys = set(keep_keys)
        existing = [key for key, in self.conn.execute('SELECT job_key FROM dfc_job').fetchall()]
        stale = [key for key in existing if key not in keep_keys]

        with self.conn:
            for batch in batched(stale, 100):
                self.conn.execute(
                    'DELETE FROM dfc_job WHERE job_key IN ({})'.format(','.join(['?'] * len(batch))),
                    list(batch)
                )

        return len(stale)

    def delete_type(self, job_type):
        with self.conn:
            rv = self.conn.execute('DELETE FROM dfc_job WHERE job_type = ?', [job_type])
            return rv.rowcount

    def pending_count(self):
        count, = self.conn.execute("SELECT count(*) FROM dfc_job WHERE status = 'pending'").fetchone()
        return count

    def counts(self):
        rv = {'pending': 0, 'due': 0, 'done': 0, 'failed': 0}
        for status, count in self.conn.execute('SELECT status, count(*) FROM dfc_job GROUP BY 1').fetchall():
            rv[status] = count

        due, = self.conn.execute(
            "SELECT count(*) FROM dfc_job WHERE status = 'pending' AND (not_before IS NULL OR not_before <= ?)",
            [self.clock()]
        ).fetchone()
        rv['due'] = due
        return rv

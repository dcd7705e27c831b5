current_schema_version = 2000001

schema = """
PRAGMA user_version = {};
""".format(current_schema_version) + """

-- Cached API payloads. Keys carry the namespace and the global cache
-- version, so bumping the version orphans every existing row.
CREATE TABLE IF NOT EXISTS dfc_cache(
  key text primary key,

  -- zstd-compressed UTF-8 JSON
  value blob not null,

  -- Unix epoch seconds
  expires_at real not null,
  created_at real not null
);

CREATE INDEX IF NOT EXISTS idx_dfc_cache_expires_at ON dfc_cache(expires_at);

-- Small key/value store, eg the global cache version.
CREATE TABLE IF NOT EXISTS dfc_setting(
  name text primary key,
  value text not null
);

-- API calls made per UTC hour, eg hour = '2024030112'
CREATE TABLE IF NOT EXISTS dfc_quota(
  hour text primary key,
  count integer not null default 0
);

-- Work for the warmer. At most one row per job_key.
CREATE TABLE IF NOT EXISTS dfc_job(
  id integer primary key,
  job_key text not null unique,
  job_type text not null check (job_type in ('photo', 'album', 'photostream')),
  payload text not null default '{}',
  priority integer not null default 0,
  not_before real,
  attempts integer not null default 0,
  last_error text,
  status text not null default 'pending' check (status in ('pending', 'done', 'failed')),
  created_at real not null,
  updated_at real not null
);

CREATE INDEX IF NOT EXISTS idx_dfc_job_due ON dfc_job(status, priority DESC, created_at);

-- Which documents reference which resource URLs.
CREATE TABLE IF NOT EXISTS dfc_known_resource(
  document_id text not null,
  url text not null,
  primary key (document_id, url)
);

-- Single-row schedule state for the warmer process.
CREATE TABLE IF NOT EXISTS dfc_warmer_state(
  id integer primary key check (id = 1),
  next_run_at real,
  pause_until real,

  -- JSON: ts, processed, rate_limited, last_error
  last_run text
);
"""

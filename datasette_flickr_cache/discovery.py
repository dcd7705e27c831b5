import logging
from collections import OrderedDict
from .plugin import pm
from .urls import job_for_resource, parse_resource_url

logger = logging.getLogger(__name__)

def canonicalize(config, document_id, url):
    """Returns the canonical form of url, or None if a plugin rejects it."""
    attempts = 0
    while attempts < 10:
        # Max 10 canonicalization attempts, in case plugins disagree.
        attempts += 1
        results = pm.hook.canonicalize_resource_url(config=config, document_id=document_id, url=url)

        rewritten = False
        for x in results:
            if isinstance(x, str) and x != url:
                url = x
                rewritten = True
                break

        if rewritten:
            continue

        if False in results:
            # Someone rejected the URL; this wins.
            return None

        return url

    return None

def canonicalize_all(config, document_id, urls):
    rv = OrderedDict()
    for url in urls:
        url = canonicalize(config, document_id, url)
        if url:
            rv[url] = True

    return list(rv)

def discover_urls(config, document_id, content):
    urls = [url for urls in pm.hook.discover_resource_urls(config=config, document_id=document_id, content=content) for url in urls]
    return canonicalize_all(config, document_id, urls)

class ResourceDiscovery:
    """Maintains the document -> resource URL registry and seeds the job queue from it."""

    def __init__(self, conn, queue, config, factory=None):
        self.conn = conn
        self.queue = queue
        self.config = config or {}
        self.factory = factory or (lambda name: conn)

    def rebuild_registry(self):
        registry = OrderedDict()
        for document_id, content in self.iter_documents():
            urls = discover_urls(self.config, document_id, content)
            if urls:
                registry[document_id] = urls

        with self.conn:
            self.conn.execute('DELETE FROM dfc_known_resource')
            for document_id, urls in registry.items():
                self.conn.executemany(
                    'INSERT OR IGNORE INTO dfc_known_resource(document_id, url) VALUES (?, ?)',
                    [(document_id, url) for url in urls]
                )

        logger.info('rebuilt known resources: %s documents, %s urls', len(registry), sum(len(urls) for urls in registry.values()))
        self.reseed_queue()
        return registry

    def iter_documents(self):
        for documents in pm.hook.get_documents(factory=self.factory, config=self.config):
            for document_id, content in documents:
                yield str(document_id), content

    def update_for_document(self, document_id, urls):
        """Replace one document's entries. An empty list removes the document."""
        canonical = canonicalize_all(self.config, document_id, urls)

        with self.conn:
            self.conn.execute('DELETE FROM dfc_known_resource WHERE document_id = ?', [document_id])
            self.conn.executemany(
                'INSERT OR IGNORE INTO dfc_known_resource(document_id, url) VALUES (?, ?)',
                [(document_id, url) for url in canonical]
            )

        self.reseed_queue()
        return canonical

    def update_from_content(self, document_id, content):
        return self.update_for_document(document_id, discover_urls(self.config, document_id, content))

    def remove_document(self, document_id):
        return self.update_for_document(document_id, [])

    def registry(self):
        rv = OrderedDict()
        for document_id, url in self.conn.execute('SELECT document_id, url FROM dfc_known_resource ORDER BY document_id, rowid'):
            rv.setdefault(document_id, []).append(url)

        return rv

    def known_urls(self):
        return [url for url, in self.conn.execute('SELECT url FROM dfc_known_resource GROUP BY url ORDER BY min(rowid)')]

    def known_jobs(self, collections_only=False):
        rv = OrderedDict()
        for url in self.known_urls():
            resource = parse_resource_url(url)
            if not resource:
                continue
            if collections_only and resource.kind == 'photo':
                continue

            job = job_for_resource(resource)
            rv.setdefault(job.job_key, job)

        return list(rv.values())

    def reseed_queue(self, collections_only=False):
        """Upsert a job per known resource; drop jobs nothing references any more."""
        jobs = self.known_jobs(collections_only)
        for job in jobs:
            self.queue.upsert(job)

        removed = self.queue.delete_missing([job.job_key for job in jobs])
        logger.info('reseeded queue: %s jobs, %s removed', len(jobs), removed)
        return len(jobs)

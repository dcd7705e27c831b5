from ..hookspecs import hookimpl
import logging

logger = logging.getLogger(__name__)

DOCUMENTS = 'documents'

def quote_identifier(name):
    return '"{}"'.format(name.replace('"', '""'))

@hookimpl
def get_documents(factory, config):
    """Read documents from the tables listed under `documents`, eg

        {"database": "blog", "table": "posts", "id": "id", "content": "body"}

    `database` defaults to the database the plugin is enabled in."""
    for source in config.get(DOCUMENTS) or []:
        conn = factory(source.get('database'))
        table = source['table']
        id_column = source.get('id', 'rowid')
        content_column = source.get('content', 'content')

        sql = 'SELECT {}, {} FROM {}'.format(
            quote_identifier(id_column) if id_column != 'rowid' else 'rowid',
            quote_identifier(content_column),
            quote_identifier(table),
        )

        for doc_id, content in conn.execute(sql):
            yield '{}:{}'.format(table, doc_id), content or ''

"""Database connection and utilities for twingraph"""
import logging
import os
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

from psycopg2.pool import ThreadedConnectionPool

from twingraph.agtype import parse_agtype
from twingraph.cypher import check_graph_name
from twingraph.errors import InvalidQuery, OperationCancelled

logger = logging.getLogger(__name__)

DB_CONFIG = {
    'host': os.getenv('TWINGRAPH_HOST', 'localhost'),
    'port': int(os.getenv('TWINGRAPH_PORT', 5432)),
    'database': os.getenv('TWINGRAPH_DB', 'twingraph'),
    'user': os.getenv('TWINGRAPH_USER', 'twingraph'),
    'password': os.getenv('TWINGRAPH_PASSWORD', 'twingraph'),
}

GRAPH_NAME = os.getenv('TWINGRAPH_GRAPH', 'digitaltwins')
POOL_MAX = int(os.getenv('TWINGRAPH_POOL_MAX', 10))
ITERSIZE = int(os.getenv('TWINGRAPH_ITERSIZE', 100))
SUPERUSER = os.getenv('TWINGRAPH_SUPERUSER', 'false').lower() in ('1', 'true', 'yes')

# Dollar-quote tag around the cypher text handed to ag_catalog.cypher()
_QUOTE_TAG = '$cypher$'


def _quote_tag(cypher: str) -> str:
    """A dollar-quote tag that does not occur in ``cypher``"""
    tag = _QUOTE_TAG
    while tag in cypher:
        tag = f"$cypher_{uuid.uuid4().hex[:8]}$"
    return tag


def cypher_sql(graph: str, cypher: str, columns: Sequence[str] = ('result',)) -> str:
    """Wrap a cypher statement in the SQL call AGE executes it through"""
    check_graph_name(graph)
    if not columns:
        raise InvalidQuery("Query must return at least one column")
    tag = _quote_tag(cypher)
    column_defs = ', '.join('"{}" agtype'.format(c.replace('"', '""')) for c in columns)
    return (f"SELECT * FROM ag_catalog.cypher('{graph}', {tag} {cypher} {tag}) "
            f"AS ({column_defs})")


def _check_cancel(cancel) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled("Operation was cancelled")


class AgeGraphStore:
    """
    Pooled psycopg2 connections to PostgreSQL with the Apache AGE extension.

    Every call checks a connection out of the pool, runs one statement in its
    own transaction and returns the connection, so a store instance can be
    shared between threads.
    """

    def __init__(self, dsn: Optional[str] = None, minconn: int = 1, maxconn: int = POOL_MAX,
                 itersize: int = ITERSIZE, super_user: bool = SUPERUSER, **config):
        self.itersize = itersize
        self._load_age = "LOAD 'age'" if super_user else "LOAD '$libdir/plugins/age'"
        if dsn:
            self._pool = ThreadedConnectionPool(minconn, maxconn, dsn)
        else:
            self._pool = ThreadedConnectionPool(minconn, maxconn, **{**DB_CONFIG, **config})

    @contextmanager
    def connection(self):
        conn = self._pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute(self._load_age)
                cur.execute('SET search_path = ag_catalog, "$user", public')
            yield conn
            conn.commit()
        except BaseException:
            if not conn.closed:
                conn.rollback()
            raise
        finally:
            self._pool.putconn(conn, close=bool(conn.closed))

    @staticmethod
    def _decode(columns: Sequence[str], row) -> Dict[str, Any]:
        return {c: parse_agtype(v) for c, v in zip(columns, row)}

    def query(self, graph: str, cypher: str, columns: Sequence[str] = ('result',),
              cancel=None) -> List[Dict[str, Any]]:
        """Run a cypher statement and return every row"""
        _check_cancel(cancel)
        sql = cypher_sql(graph, cypher, columns)
        logger.debug("cypher on %s: %s", graph, cypher)
        with self.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql)
                return [self._decode(columns, row) for row in cur.fetchall()]

    def stream(self, graph: str, cypher: str, columns: Sequence[str] = ('result',),
               cancel=None) -> Iterator[Dict[str, Any]]:
        """
        Lazily yield rows through a server-side cursor.

        ``cancel`` is any object with ``is_set()`` (e.g. ``threading.Event``);
        it is checked between rows. Closing the generator early releases the
        cursor and the pooled connection.
        """
        _check_cancel(cancel)
        sql = cypher_sql(graph, cypher, columns)
        logger.debug("cypher stream on %s: %s", graph, cypher)
        with self.connection() as conn:
            with conn.cursor(name=f"twingraph_{uuid.uuid4().hex}") as cur:
                cur.itersize = self.itersize
                cur.execute(sql)
                for row in cur:
                    _check_cancel(cancel)
                    yield self._decode(columns, row)

    def execute(self, graph: str, cypher: str, cancel=None) -> int:
        """Run a cypher statement and return the number of rows it produced"""
        _check_cancel(cancel)
        sql = cypher_sql(graph, cypher)
        logger.debug("cypher execute on %s: %s", graph, cypher)
        with self.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql)
                return cur.rowcount

    def execute_sql(self, sql: str, params=None) -> None:
        """Run plain SQL (graph DDL, index creation)"""
        with self.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, params)

    def close(self) -> None:
        self._pool.closeall()

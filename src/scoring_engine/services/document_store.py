"""
Document Store
Persists one JSON document per (collection, id). Every scoring operation runs
as a single read-modify-write transaction on one document.
"""

import copy
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

import psycopg2
from psycopg2 import pool
from psycopg2.extras import Json
import structlog

logger = structlog.get_logger()

SEGMENTATION = 'customer_segments'
PRICING = 'dynamic_prices'
INSTALLMENT_PLANS = 'installment_plans'
CREDIT_APPLICATIONS = 'credit_applications'


class DocumentTransaction:
    """Handle for one document inside a transaction"""

    def __init__(self, collection: str, doc_id: str, document: Optional[Dict]):
        self.collection = collection
        self.doc_id = doc_id
        self.document = document
        self.dirty = False

    def store(self, document: Dict):
        self.document = document
        self.dirty = True


class DocumentStore:
    """Interface shared by the in-memory and PostgreSQL stores"""

    def get(self, collection: str, doc_id: str) -> Optional[Dict]:
        raise NotImplementedError

    def put(self, collection: str, doc_id: str, document: Dict):
        raise NotImplementedError

    def find(self, collection: str, predicate: Optional[Callable[[Dict], bool]] = None) -> List[Dict]:
        raise NotImplementedError

    def transaction(self, collection: str, doc_id: str):
        raise NotImplementedError

    def close(self):
        pass


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store; one lock serialises all transactions"""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict]] = {}
        self._lock = threading.RLock()

    def get(self, collection: str, doc_id: str) -> Optional[Dict]:
        with self._lock:
            document = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(document)

    def put(self, collection: str, doc_id: str, document: Dict):
        with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(document)

    def find(self, collection: str, predicate: Optional[Callable[[Dict], bool]] = None) -> List[Dict]:
        with self._lock:
            documents = [copy.deepcopy(d) for d in self._collections.get(collection, {}).values()]
        if predicate is None:
            return documents
        return [d for d in documents if predicate(d)]

    @contextmanager
    def transaction(self, collection: str, doc_id: str) -> Iterator[DocumentTransaction]:
        with self._lock:
            handle = DocumentTransaction(collection, doc_id, self.get(collection, doc_id))
            yield handle
            if handle.dirty:
                self.put(collection, doc_id, handle.document)


class PostgresDocumentStore(DocumentStore):
    """
    PostgreSQL store backed by a single JSONB table.

    ``transaction`` locks the row with SELECT ... FOR UPDATE so concurrent
    writers to the same record are serialised instead of losing updates.
    """

    def __init__(self, pg_config: Dict, minconn: int = 2, maxconn: int = 10):
        self.pg_pool = pool.ThreadedConnectionPool(minconn=minconn, maxconn=maxconn, **pg_config)
        logger.info("PostgreSQL connection pool established",
                    host=pg_config.get('host'), port=pg_config.get('port'))

    @contextmanager
    def _connection(self):
        conn = self.pg_pool.getconn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self.pg_pool.putconn(conn)

    def ensure_schema(self):
        """Create the documents table if not exists"""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection VARCHAR(64) NOT NULL,
                    doc_id VARCHAR(128) NOT NULL,
                    body JSONB NOT NULL,
                    created_at TIMESTAMP DEFAULT NOW(),
                    updated_at TIMESTAMP DEFAULT NOW(),
                    PRIMARY KEY (collection, doc_id)
                )
            """)
            cursor.close()
        logger.info("Document table ready")

    @staticmethod
    def _upsert(cursor, collection: str, doc_id: str, document: Dict):
        cursor.execute("""
            INSERT INTO documents (collection, doc_id, body)
            VALUES (%s, %s, %s)
            ON CONFLICT (collection, doc_id)
            DO UPDATE SET body = EXCLUDED.body, updated_at = NOW()
        """, (collection, doc_id, Json(document)))

    def get(self, collection: str, doc_id: str) -> Optional[Dict]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT body FROM documents WHERE collection = %s AND doc_id = %s",
                (collection, doc_id)
            )
            row = cursor.fetchone()
            cursor.close()
        return row[0] if row else None

    def put(self, collection: str, doc_id: str, document: Dict):
        with self._connection() as conn:
            cursor = conn.cursor()
            self._upsert(cursor, collection, doc_id, document)
            cursor.close()

    def find(self, collection: str, predicate: Optional[Callable[[Dict], bool]] = None) -> List[Dict]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT body FROM documents WHERE collection = %s ORDER BY created_at",
                (collection,)
            )
            documents = [row[0] for row in cursor.fetchall()]
            cursor.close()
        if predicate is None:
            return documents
        return [d for d in documents if predicate(d)]

    @contextmanager
    def transaction(self, collection: str, doc_id: str) -> Iterator[DocumentTransaction]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT body FROM documents WHERE collection = %s AND doc_id = %s FOR UPDATE",
                (collection, doc_id)
            )
            row = cursor.fetchone()
            handle = DocumentTransaction(collection, doc_id, row[0] if row else None)
            yield handle
            if handle.dirty:
                self._upsert(cursor, collection, doc_id, handle.document)
            cursor.close()

    def close(self):
        if self.pg_pool:
            self.pg_pool.closeall()


def create_document_store(backend: str, pg_config: Optional[Dict] = None, **pool_options) -> DocumentStore:
    if backend == 'postgres':
        try:
            store = PostgresDocumentStore(pg_config, **pool_options)
            store.ensure_schema()
            return store
        except psycopg2.Error as e:
            logger.error("Failed to connect to PostgreSQL", error=str(e))
            raise
    return InMemoryDocumentStore()

# caforge/storage/serials.py
"""
SQLite-backed serial counter, one row per CA.
Provides:
 - SerialStore(path).next_serial(ca_cert) -> int
 - SerialStore(path).last_serial(ca_cert) -> int or None
 - SerialStore.for_ca_cert(ca_cert_path) -> store file next to the CA cert

Rows are keyed by the CA certificate SHA-256 fingerprint. Allocation runs
inside BEGIN IMMEDIATE so concurrent processes are serialized by sqlite's
write lock; threads sharing one store also take an in-process lock.
"""
import logging
import os
import secrets
import sqlite3
import threading
from typing import Optional

from caforge.common import settings
from caforge.common.errors import SigningError
from caforge.crypto.pki import cert_fingerprint_hex

log = logging.getLogger(__name__)

CREATE_SQL = """
CREATE TABLE IF NOT EXISTS serials (
    ca_fingerprint TEXT PRIMARY KEY,   -- hex SHA-256 of the CA certificate
    ca_subject TEXT NOT NULL,
    last_serial TEXT NOT NULL          -- hex, may exceed 64 bits
);
"""

# first serial for a new CA is random in [1, 2**62]
FIRST_SERIAL_BITS = 62


class SerialStore:
    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    @classmethod
    def for_ca_cert(cls, ca_cert_path: str) -> "SerialStore":
        if settings.SERIAL_DB_PATH:
            return cls(settings.SERIAL_DB_PATH)
        stem, _ = os.path.splitext(ca_cert_path)
        return cls(stem + ".srl.db")

    def get_conn(self):
        conn = sqlite3.connect(self.path, timeout=30, isolation_level=None)
        conn.execute(CREATE_SQL)
        return conn

    def next_serial(self, ca_cert) -> int:
        """
        Allocate the next serial for `ca_cert` and persist it.
        The record is created on first use.
        """
        fp = cert_fingerprint_hex(ca_cert)
        with self._lock:
            try:
                conn = self.get_conn()
            except sqlite3.Error as exc:
                raise SigningError(f"cannot open serial database {self.path}: {exc}") from exc
            try:
                cur = conn.cursor()
                cur.execute("BEGIN IMMEDIATE")
                cur.execute("SELECT last_serial FROM serials WHERE ca_fingerprint = ?", (fp,))
                row = cur.fetchone()
                if row is None:
                    serial = secrets.randbelow(1 << FIRST_SERIAL_BITS) + 1
                    cur.execute("INSERT INTO serials (ca_fingerprint, ca_subject, last_serial) VALUES (?,?,?)",
                                (fp, ca_cert.subject.rfc4514_string(), format(serial, "x")))
                else:
                    serial = int(row[0], 16) + 1
                    cur.execute("UPDATE serials SET last_serial = ? WHERE ca_fingerprint = ?",
                                (format(serial, "x"), fp))
                cur.execute("COMMIT")
                cur.close()
            except sqlite3.Error as exc:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise SigningError(f"cannot allocate serial number in {self.path}: {exc}") from exc
            finally:
                conn.close()
        log.debug("allocated serial %x for CA %s", serial, fp[:16])
        return serial

    def last_serial(self, ca_cert) -> Optional[int]:
        conn = self.get_conn()
        cur = conn.cursor()
        cur.execute("SELECT last_serial FROM serials WHERE ca_fingerprint = ?", (cert_fingerprint_hex(ca_cert),))
        row = cur.fetchone()
        cur.close()
        conn.close()
        if not row:
            return None
        return int(row[0], 16)

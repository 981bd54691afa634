"""
Shared fixtures: in-memory stand-ins for Firestore, Firebase Storage and the
extraction gateway, plus small generated documents.
"""

import io
import json
import threading
import time
from collections import defaultdict

import pytest
from pypdf import PdfWriter

from healthrecords.config import Settings
from healthrecords.persistence import PersistenceOrchestrator, RecordMetadata, UploadedDocument


def make_text_pdf(text: str) -> bytes:
    content = b"BT /F1 12 Tf 72 720 Td (" + text.encode("latin-1") + b") Tj ET"
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 4 0 R "
        b"/Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(content) + content + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    out = b"%PDF-1.4\n"
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"
    xref_at = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    out += b"".join(b"%010d 00000 n \n" % offset for offset in offsets)
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref_at)
    return out


def make_blank_pdf(pages: int = 2) -> bytes:
    """A PDF without a text layer, like a scanned document."""
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


class FakeStore:
    """Mimics ``firestore_client.insert`` with per-collection failures."""

    def __init__(self, fail_tables=(), slow_tables=(), delay=0.5):
        self.tables = defaultdict(list)
        self.fail_tables = set(fail_tables)
        self.slow_tables = set(slow_tables)
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def insert(self, table, rows):
        with self._lock:
            self.calls.append(table)
        if table in self.fail_tables:
            raise RuntimeError(f"insert into {table} rejected")
        if table in self.slow_tables:
            time.sleep(self.delay)
        inserted = []
        with self._lock:
            for row in rows:
                doc = {**row, "id": f"{table}-{len(self.tables[table]) + 1}"}
                self.tables[table].append(doc)
                inserted.append(doc)
        return inserted


class FakeBlobStore:
    def __init__(self, fail=False):
        self.fail = fail
        self.objects = {}
        self.url_lookups = []

    def upload(self, path, data, content_type=None):
        if self.fail:
            raise ConnectionError("bucket unreachable")
        self.objects[path] = (data, content_type)
        return f"https://storage.example.test/{path}"

    def get_public_url(self, path):
        self.url_lookups.append(path)
        return f"https://storage.example.test/{path}"


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(self, status_code, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text or (json.dumps(body) if body is not None else "")

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeGateway:
    """Synchronous stand-in for ``GatewayClient``."""

    def __init__(self, payload=None, configured=True, error=None, release=None):
        self.payload = payload if payload is not None else {}
        self.configured = configured
        self.error = error
        self.release = release
        self.preflight_calls = 0
        self.analyze_calls = []

    def model_configured(self):
        self.preflight_calls += 1
        return self.configured

    def analyze(self, filename, data, content_type=None):
        self.analyze_calls.append(filename)
        if self.release is not None:
            self.release.wait(timeout=2)
        if self.error is not None:
            raise self.error
        return self.payload


@pytest.fixture
def settings():
    return Settings(
        gemini_api_key="test-key",
        gemini_json_model="gemini-test",
        summary_max_length=40,
        entry_name_max_length=30,
        parameter_value_max_length=10,
        recommendation_max_length=50,
        derived_write_timeout_seconds=1.0,
        notification_seconds=5.0,
        analysis_retry_limit=1,
    )


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def orchestrator(store, blob_store, settings):
    return PersistenceOrchestrator(store=store, blob_store=blob_store, settings=settings)


@pytest.fixture
def metadata():
    return RecordMetadata(user_id="user-1", condition="Diabetes", since="2024-01-15", report_type="lab_test")


@pytest.fixture
def text_document():
    return UploadedDocument(
        filename="labs.txt",
        content_type="text/plain",
        data=b"HbA1c 7.2 %\nFasting glucose 140 mg/dL\nDiagnosis: Type 2 diabetes",
    )


@pytest.fixture
def model_payload():
    return {
        "parameters": {"HbA1c": "7.2 %", "Fasting glucose": 140, "LDL": None},
        "aiAnalysis": {
            "conditions": "Type 2 diabetes",
            "medications": ["Metformin 500mg", None],
            "recommendations": "Repeat HbA1c in three months.",
            "summary": "Poorly controlled type 2 diabetes.",
        },
    }

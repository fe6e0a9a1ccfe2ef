from datetime import date

import pytest
import requests

from inforia import google_docs
from inforia.auth import AuthenticatedUser
from inforia.errors import ErrorKind, PipelineError

from conftest import DOCS_URL, DRIVE_URL


def user(*providers):
    return AuthenticatedUser(id="u1", access_token="jwt", providers=tuple(providers))


def test_build_report_title():
    title = google_docs.build_report_title(date(2024, 1, 5), " María García ", "Evaluación inicial ")
    assert title == "2024-01-05 - María García - Evaluación inicial"


def test_resolve_google_token():
    assert google_docs.resolve_google_token(user("email", "google"), " tok ") == "tok"


def test_resolve_google_token_not_linked():
    with pytest.raises(PipelineError) as excinfo:
        google_docs.resolve_google_token(user("email"), "tok")
    assert excinfo.value.kind is ErrorKind.INTEGRATION_NOT_CONNECTED


@pytest.mark.parametrize("token", [None, "", "   "])
def test_resolve_google_token_missing(token):
    with pytest.raises(PipelineError) as excinfo:
        google_docs.resolve_google_token(user("google"), token)
    assert excinfo.value.kind is ErrorKind.TOKEN_EXPIRED


def test_export_document(requests_mock):
    requests_mock.post(DOCS_URL, json={"documentId": "abc123"})
    meta = requests_mock.get(
        f"{DRIVE_URL}/abc123",
        json={"id": "abc123", "name": "Informe", "webViewLink": "https://docs.google.com/d/abc123", "size": "512"},
    )

    doc = google_docs.export_document("tok", "Informe", "contenido")
    assert doc == google_docs.ExternalDocument(
        id="abc123", name="Informe", url="https://docs.google.com/d/abc123", size=512
    )
    assert meta.call_count == 1


def test_export_document_without_size(requests_mock):
    requests_mock.post(DOCS_URL, json={"documentId": "abc123"})
    requests_mock.get(
        f"{DRIVE_URL}/abc123",
        json={"id": "abc123", "webViewLink": "https://docs.google.com/d/abc123"},
    )

    doc = google_docs.export_document("tok", "Informe", "contenido")
    assert doc.size is None
    assert doc.name == "Informe"


def test_export_document_missing_id(requests_mock):
    requests_mock.post(DOCS_URL, json={"title": "Informe"})
    meta = requests_mock.get(f"{DRIVE_URL}/abc123", json={})

    with pytest.raises(PipelineError) as excinfo:
        google_docs.export_document("tok", "Informe", "contenido")
    assert excinfo.value.kind is ErrorKind.EXPORT_FAILED
    assert meta.call_count == 0


def test_export_document_incomplete_metadata(requests_mock):
    requests_mock.post(DOCS_URL, json={"documentId": "abc123"})
    requests_mock.get(f"{DRIVE_URL}/abc123", json={"id": "abc123"})

    with pytest.raises(PipelineError) as excinfo:
        google_docs.export_document("tok", "Informe", "contenido")
    assert excinfo.value.kind is ErrorKind.EXPORT_FAILED


@pytest.mark.parametrize("status, kind", [(401, ErrorKind.TOKEN_EXPIRED), (403, ErrorKind.EXPORT_FAILED)])
def test_export_document_http_errors(requests_mock, status, kind):
    requests_mock.post(DOCS_URL, status_code=status, json={"error": {"code": status}})

    with pytest.raises(PipelineError) as excinfo:
        google_docs.export_document("tok", "Informe", "contenido")
    assert excinfo.value.kind is kind


def test_export_document_network_error(requests_mock):
    requests_mock.post(DOCS_URL, exc=requests.exceptions.ConnectTimeout)

    with pytest.raises(PipelineError) as excinfo:
        google_docs.export_document("tok", "Informe", "contenido")
    assert excinfo.value.kind is ErrorKind.EXPORT_FAILED

"""Test fixtures and utilities."""

from datetime import date
from pathlib import Path

import pytest
from fixtures import SUPPLIER_CNPJ, TENANT_ID, USER_ID, get_full_nfe, get_simple_nfe

from nfe_intake.config import Config
from nfe_intake.services import InvoiceIngestionService, TenantContext
from nfe_intake.state_store import StateStore


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_state.db"


@pytest.fixture
def store(temp_db) -> StateStore:
    """Fresh state store."""
    return StateStore(temp_db)


@pytest.fixture
def config(temp_db) -> Config:
    """Default config pointing at the temporary database."""
    return Config(state_db_path=temp_db)


@pytest.fixture
def context() -> TenantContext:
    """Acting tenant and user."""
    return TenantContext(tenant_id=TENANT_ID, user_id=USER_ID)


@pytest.fixture
def service(store, config) -> InvoiceIngestionService:
    """Ingestion service with a fixed processing date."""
    return InvoiceIngestionService(store, config, today=lambda: date(2024, 6, 30))


@pytest.fixture
def supplier(store):
    """Active supplier matching the sample issuer CNPJ."""
    return store.add_supplier(TENANT_ID, "Distribuidora Alimentos", tax_id=SUPPLIER_CNPJ)


@pytest.fixture
def sample_full_nfe() -> str:
    """nfeProc-wrapped NF-e with two lines and two duplicatas."""
    return get_full_nfe()


@pytest.fixture
def sample_simple_nfe() -> str:
    """Single-line NF-e, one duplicata without due date."""
    return get_simple_nfe()

"""
Test fixtures for NF-e documents.

This module provides sample NF-e XML files for testing:
- nfe_full.xml: nfeProc-wrapped NF-e with protocol, two lines, two duplicatas
- nfe_simple.xml: bare NF-e, key only in infNFe Id, one line, one duplicata
  without due date
"""

from pathlib import Path

FIXTURES_DIR = Path(__file__).parent

FULL_ACCESS_KEY = "35240512345678000190550010000012341123456780"
SIMPLE_ACCESS_KEY = "35240512345678000190550010000012351876543211"
OTHER_ACCESS_KEY = "41240598765432000110550020000000771000000420"

SUPPLIER_CNPJ = "12345678000190"

TENANT_ID = "org-1"
USER_ID = "user-1"
STORE_ID = "store-1"


def load_fixture(name: str) -> str:
    """Load a fixture file as string."""
    filepath = FIXTURES_DIR / name
    return filepath.read_text(encoding="utf-8")


def get_full_nfe() -> str:
    """Get the full nfeProc sample XML."""
    return load_fixture("nfe_full.xml")


def get_simple_nfe() -> str:
    """Get the single-line sample XML."""
    return load_fixture("nfe_simple.xml")


def build_nfe(
    access_key: str | None = None,
    with_protocol: bool = False,
    emit: str = "<emit><CNPJ>12345678000190</CNPJ><xNome>Fornecedor Teste</xNome></emit>",
    dets: str = (
        "<det nItem=\"1\"><prod><cProd>X1</cProd><xProd>Produto Teste</xProd>"
        "<qCom>1</qCom><vUnCom>10.00</vUnCom><vProd>10.00</vProd></prod></det>"
    ),
    total: str = "<total><ICMSTot><vProd>10.00</vProd><vNF>10.00</vNF></ICMSTot></total>",
    cobr: str = "",
    ide: str = "<ide><nNF>1</nNF><serie>1</serie><dhEmi>2024-05-01T08:00:00-03:00</dhEmi></ide>",
) -> str:
    """Assemble a small NF-e document from parts."""
    id_attr = f' Id="NFe{access_key}"' if access_key else ""
    protocol = (
        f"<protNFe><infProt><chNFe>{access_key}</chNFe></infProt></protNFe>"
        if with_protocol and access_key
        else ""
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<nfeProc><NFe><infNFe versao="4.00"{id_attr}>'
        f"{ide}{emit}{dets}{total}{cobr}"
        f"</infNFe></NFe>{protocol}</nfeProc>"
    )

from lxml.etree import QName

INVOICE_NS = "urn:oasis:names:specification:ubl:schema:xsd:Invoice-2"
CREDIT_NOTE_NS = "urn:oasis:names:specification:ubl:schema:xsd:CreditNote-2"
VOIDED_NS = "urn:sunat:names:specification:ubl:peru:schema:xsd:VoidedDocuments-1"

CAC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2"
CBC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2"
EXT_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonExtensionComponents-2"
SAC_NS = "urn:sunat:names:specification:ubl:peru:schema:xsd:SunatAggregateComponents-1"
DS_NS = "http://www.w3.org/2000/09/xmldsig#"

UBL_VERSION = "2.1"
CUSTOMIZATION_ID = "2.0"


def namespace_map(raiz_ns: str) -> dict:
    nsmap = {
        None: raiz_ns,
        "cac": CAC_NS,
        "cbc": CBC_NS,
        "ext": EXT_NS,
        "ds": DS_NS,
    }
    if raiz_ns == VOIDED_NS:
        nsmap["sac"] = SAC_NS
    return nsmap


def cac(tag: str) -> QName:
    return QName(CAC_NS, tag)


def cbc(tag: str) -> QName:
    return QName(CBC_NS, tag)


def ext(tag: str) -> QName:
    return QName(EXT_NS, tag)


def sac(tag: str) -> QName:
    return QName(SAC_NS, tag)


def ds(tag: str) -> QName:
    return QName(DS_NS, tag)

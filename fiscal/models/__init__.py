from .documento_models import (
    DocumentoAuditoria,
    DocumentoEletronico,
    DocumentoStatus,
    TipoDocumento,
)
from .sequencia_models import SequenciaDocumento
from .certificado_models import CertificadoDigital
from .baixa_models import ComunicacaoBaixa


__all__ = [
    "DocumentoAuditoria",
    "DocumentoEletronico",
    "DocumentoStatus",
    "TipoDocumento",
    "SequenciaDocumento",
    "CertificadoDigital",
    "ComunicacaoBaixa",
]

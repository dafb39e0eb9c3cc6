# fiscal/filters.py
import django_filters

from fiscal.models import DocumentoEletronico, DocumentoStatus, TipoDocumento


class DocumentoFilter(django_filters.FilterSet):
    """
    Filtros da listagem de documentos. O tenant nunca vem daqui: o queryset
    base já chega restrito ao tenant do usuário.
    """

    tipo = django_filters.ChoiceFilter(choices=TipoDocumento.choices)
    status = django_filters.ChoiceFilter(choices=DocumentoStatus.choices)
    data_inicio = django_filters.IsoDateTimeFilter(field_name="data_emissao", lookup_expr="gte")
    data_fim = django_filters.IsoDateTimeFilter(field_name="data_emissao", lookup_expr="lte")
    receptor = django_filters.CharFilter(field_name="receptor__numero_documento")

    class Meta:
        model = DocumentoEletronico
        fields = ["tipo", "status", "data_inicio", "data_fim", "receptor"]

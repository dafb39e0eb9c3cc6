# fiscal/urls.py

from django.urls import path

from fiscal.views.anulacao_views import comunicacao_baixa_view, nota_credito_view
from fiscal.views.certificado_views import carregar_certificado_view
from fiscal.views.documento_views import (
    assinar_documento_view,
    consultar_ticket_view,
    enviar_documento_view,
    gerar_documento_view,
    listar_documentos_view,
    reprocessar_pendentes_view,
    status_documento_view,
)

app_name = "fiscal"

urlpatterns = [
    path("documentos/", listar_documentos_view, name="documentos_listar"),

    path("documentos/gerar", gerar_documento_view, name="documentos_gerar"),
    path("documentos/assinar", assinar_documento_view, name="documentos_assinar"),
    path("documentos/enviar", enviar_documento_view, name="documentos_enviar"),
    path("documentos/reprocessar", reprocessar_pendentes_view, name="documentos_reprocessar"),
    path("documentos/consultar-ticket", consultar_ticket_view, name="documentos_consultar_ticket"),

    # anulação
    path("documentos/nota-credito", nota_credito_view, name="documentos_nota_credito"),
    path("documentos/comunicacao-baixa", comunicacao_baixa_view, name="documentos_comunicacao_baixa"),

    path("documentos/<str:numero>/status", status_documento_view, name="documentos_status"),

    path("certificados", carregar_certificado_view, name="certificados_carregar"),
]

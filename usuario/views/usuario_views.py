from django.contrib.auth import authenticate
from django.utils import timezone
from rest_framework.decorators import api_view, throttle_classes
from rest_framework.response import Response
from rest_framework_simplejwt.tokens import RefreshToken

from usuario.serializers import LoginSerializer


@api_view(["POST"])
def login(request):
    ser = LoginSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    data = ser.validated_data
    user = authenticate(username=data["username"], password=data["password"])
    if not user:
        return Response({"code": "AUTH_1001", "message": "Credenciais inválidas"}, status=401)

    if user.tenant is None:
        return Response({"code": "AUTH_1005", "message": "Usuário sem empresa vinculada"}, status=403)

    if not user.tenant.ativo:
        return Response({"code": "AUTH_1006", "message": "Empresa inativa"}, status=403)

    refresh = RefreshToken.for_user(user)
    # claims
    refresh["tenant_id"] = user.tenant.tenant_id

    access = refresh.access_token
    access["iat_server"] = int(timezone.now().timestamp())

    return Response({
        "access": str(access),
        "refresh": str(refresh),
        "tenant_id": user.tenant.tenant_id,
    })


@api_view(["POST"])
@throttle_classes([])
def refresh(request):
    from rest_framework_simplejwt.serializers import TokenRefreshSerializer
    ser = TokenRefreshSerializer(data=request.data)
    if not ser.is_valid():
        return Response({"code": "AUTH_1011", "message": "Refresh token inválido ou expirado."}, status=401)
    return Response(ser.validated_data)

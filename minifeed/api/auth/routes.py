# minifeed/api/auth/routes.py

import logging
import jwt
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import (
    create_access_token,
    create_refresh_token,
    jwt_required,
    get_jwt_identity,
    get_jwt,
    decode_token
)
from flask_jwt_extended.exceptions import JWTExtendedException

from minifeed.api.auth.schemas import LoginSchema, LoginResponseSchema, LogoutRequestSchema
from minifeed.api.auth.services import identity_from_jwt
from minifeed.services.identity_service import IdentityContext

auth_bp = Blueprint('auth_bp', __name__)

@auth_bp.route('/login', methods=['POST'])
def login():
    """Firebase ID 토큰을 검증하고 API용 Access/Refresh 토큰을 발급합니다."""
    data = LoginSchema().load(request.get_json(silent=True) or {})
    identity = IdentityContext(current_app.services['identity'])
    principal = identity.sign_in(data['id_token'])

    claims = {"email": principal.email}
    access_token = create_access_token(identity=principal.user_id, additional_claims=claims)
    refresh_token = create_refresh_token(identity=principal.user_id, additional_claims=claims)

    return jsonify(LoginResponseSchema().dump({
        "access_token": access_token,
        "refresh_token": refresh_token,
        "user_id": principal.user_id,
        "user_name": identity.current_display_name
    })), 200


# --- 토큰 재발급 엔드포인트 ---
@auth_bp.route('/token/refresh', methods=['POST'])
@jwt_required(refresh=True) # Refresh Token만 허용
def refresh_token():
    """유효한 Refresh Token으로 새로운 Access Token을 발급합니다."""
    current_user_id = get_jwt_identity()
    claims = {"email": get_jwt().get("email", "")}
    new_access_token = create_access_token(identity=current_user_id, additional_claims=claims)
    return jsonify(access_token=new_access_token), 200


# --- 로그아웃 엔드포인트 ---
@auth_bp.route('/logout', methods=['POST'])
@jwt_required()
def logout():
    """로그아웃. 현재 Access 토큰(및 전달받은 Refresh 토큰)을 무효화 목록에 추가합니다."""
    auth_service = current_app.services['auth']
    data = LogoutRequestSchema().load(request.get_json(silent=True) or {})
    access_claims = get_jwt()

    refresh_jti = refresh_exp = None
    if data.get('refresh_token'):
        try:
            # 만료된 Refresh 토큰도 무효화 목록에 올릴 수 있도록 만료 검사는 생략합니다.
            decoded_refresh = decode_token(data['refresh_token'], allow_expired=True)
        except (jwt.PyJWTError, JWTExtendedException) as e:
            logging.error(f"JWT 해독 오류 발생: {e}", exc_info=True)
            return jsonify({"error_code": "INVALID_TOKEN", "message": "유효하지 않은 토큰입니다."}), 422
        if decoded_refresh.get('type') != 'refresh' or decoded_refresh.get('sub') != get_jwt_identity():
            return jsonify({"error_code": "INVALID_TOKEN", "message": "유효하지 않은 토큰입니다."}), 422
        refresh_jti = decoded_refresh['jti']
        refresh_exp = decoded_refresh['exp']

    auth_service.logout_user(
        identity_from_jwt(),
        access_claims['jti'], access_claims['exp'],
        refresh_jti, refresh_exp
    )
    return jsonify({"message": "로그아웃 되었습니다."}), 200

from flask_bcrypt import Bcrypt
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# 在 create_app 裡 init_app,blueprint 可以直接 import 而不會循環引用
jwt = JWTManager()
bcrypt = Bcrypt()
cors = CORS()

# 開發環境用記憶體,production 用 Redis (見 RATELIMIT_STORAGE_URI)
limiter = Limiter(
    get_remote_address,
    default_limits=["1000 per day", "200 per hour"]
)

import os
from dotenv import load_dotenv

# 加载 .env 环境变量
load_dotenv()
basedir = os.path.abspath(os.path.dirname(__file__))


class Config:
    """基础配置类"""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'hard-to-guess-string'

    # 数据库配置
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_RECORD_QUERIES = True

    # 日志级别
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # 数据库瞬时故障重试 (仅针对连接类错误，业务错误不重试)
    DB_RETRY_ATTEMPTS = int(os.environ.get('DB_RETRY_ATTEMPTS', 3))
    DB_RETRY_BACKOFF = float(os.environ.get('DB_RETRY_BACKOFF', 0.2))

    # 报表默认统计区间 (天)
    REPORT_DEFAULT_DAYS = int(os.environ.get('REPORT_DEFAULT_DAYS', 30))
    ITEMS_PER_PAGE = 15

    # 通知载荷中使用的公司信息
    COMPANY_NAME = os.environ.get('COMPANY_NAME', 'Inventory Pro')
    MAIL_SENDER = os.environ.get('MAIL_SENDER', 'Inventory Pro <info@inventorypro.com>')

    # 缓存配置 (默认使用 SimpleCache，生产环境可改 Redis)
    CACHE_TYPE = "SimpleCache"
    CACHE_DEFAULT_TIMEOUT = 300

    @staticmethod
    def init_app(app):
        pass


def _pool_options():
    """连接池上限 (SQLite 不使用连接池参数)"""
    return {
        'pool_pre_ping': True,
        'pool_recycle': 300,
        'pool_size': int(os.environ.get('DB_POOL_SIZE', 5)),
        'max_overflow': int(os.environ.get('DB_MAX_OVERFLOW', 5)),
        'pool_timeout': 30,
    }


class DevelopmentConfig(Config):
    """开发环境配置"""
    DEBUG = True
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'instance', 'inventory_pro.db')

    @classmethod
    def init_app(cls, app):
        Config.init_app(app)
        os.makedirs(os.path.join(basedir, 'instance'), exist_ok=True)


class ProductionConfig(Config):
    """生产环境配置"""
    DEBUG = False

    DATABASE_URL = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'instance', 'inventory_prod.db')
    # PostgreSQL URL 修正（部分平台使用 postgres://）
    if DATABASE_URL and DATABASE_URL.startswith('postgres://'):
        DATABASE_URL = DATABASE_URL.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    if not DATABASE_URL.startswith('sqlite'):
        SQLALCHEMY_ENGINE_OPTIONS = _pool_options()

    # 安全设置
    SESSION_COOKIE_SECURE = os.environ.get('SESSION_COOKIE_SECURE', 'false').lower() in ('1', 'true', 'yes')
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    @classmethod
    def init_app(cls, app):
        Config.init_app(app)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    WTF_CSRF_ENABLED = False
    CACHE_TYPE = "NullCache"
    DB_RETRY_BACKOFF = 0
    LOG_LEVEL = 'WARNING'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}

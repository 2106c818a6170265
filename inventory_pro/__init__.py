import logging
import colorlog
from flask import Flask, jsonify, render_template, request
from config import config
from inventory_pro.extensions import db, migrate, login_manager, cache, csrf
from inventory_pro.exceptions import InventoryException

# 导入 commands 模块，用于注册 CLI 命令
from inventory_pro import commands


def create_app(config_name='default'):
    """Inventory Pro 应用工厂函数"""
    app = Flask(__name__)

    # 1. 加载配置
    app.config.from_object(config[config_name])
    config[config_name].init_app(app)

    # 2. 初始化扩展
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    cache.init_app(app)
    csrf.init_app(app)

    # 3. 配置日志
    configure_logging(app)

    # 4. 注册蓝图 (Blueprints)
    register_blueprints(app)

    # 5. 注册全局错误处理
    register_error_handlers(app)

    # 6. 注册 CLI 命令
    register_commands(app)

    return app


def register_blueprints(app):
    """注册所有业务模块蓝图"""
    # 主页蓝图
    from inventory_pro.blueprints.main import main_bp
    app.register_blueprint(main_bp)

    # 认证蓝图
    from inventory_pro.blueprints.auth import auth_bp
    app.register_blueprint(auth_bp, url_prefix='/auth')

    # 库存管理蓝图 (商品、台账、调拨、调整)
    from inventory_pro.blueprints.inventory import inventory_bp
    app.register_blueprint(inventory_bp, url_prefix='/inventory')

    # 采购管理蓝图 (采购单、收货)
    from inventory_pro.blueprints.purchase import purchase_bp
    app.register_blueprint(purchase_bp, url_prefix='/purchase')

    # 销售管理蓝图 (销售单、POS)
    from inventory_pro.blueprints.sales import sales_bp
    app.register_blueprint(sales_bp, url_prefix='/sales')

    # 报表分析蓝图
    from inventory_pro.blueprints.reports import reports_bp
    app.register_blueprint(reports_bp, url_prefix='/reports')


def _wants_json():
    return request.is_json or request.accept_mimetypes.best == 'application/json'


def register_error_handlers(app):
    @app.errorhandler(InventoryException)
    def handle_inventory_exception(e):
        app.logger.warning('业务异常 [%s] %s', e.kind, e.message)
        if _wants_json():
            return jsonify(e.to_dict()), e.code
        return render_template('errors/error.html', error=e), e.code

    @app.errorhandler(403)
    def forbidden(e):
        return render_template('errors/403.html'), 403

    @app.errorhandler(404)
    def page_not_found(e):
        return render_template('errors/404.html'), 404

    @app.errorhandler(500)
    def internal_server_error(e):
        db.session.rollback()
        return render_template('errors/500.html'), 500


def register_commands(app):
    """注册 Flask CLI 命令"""
    app.cli.add_command(commands.forge)
    app.cli.add_command(commands.status)


def configure_logging(app):
    """
    配置彩色控制台日志
    业务模块使用 logging.getLogger(__name__)，记录会向上传递到 inventory_pro 日志器
    """
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setLevel(level)

    formatter = colorlog.ColoredFormatter(
        "%(log_color)s[%(asctime)s] %(levelname)-8s%(reset)s %(blue)s%(name)s%(reset)s %(message)s",
        datefmt="%H:%M:%S",
        reset=True,
        log_colors={
            'DEBUG':    'cyan',
            'INFO':     'green',
            'WARNING':  'yellow',
            'ERROR':    'red',
            'CRITICAL': 'red,bg_white',
        },
        secondary_log_colors={},
        style='%'
    )
    handler.setFormatter(formatter)

    # app.logger 的名称即 inventory_pro，子模块日志器会继承该处理器
    app.logger.handlers = [h for h in app.logger.handlers if not getattr(h, '_inventory_pro', False)]
    handler._inventory_pro = True
    app.logger.addHandler(handler)
    app.logger.setLevel(level)

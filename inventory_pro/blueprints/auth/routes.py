import logging
from datetime import datetime
from urllib.parse import urlsplit

from flask import render_template, redirect, request, url_for, flash
from flask_login import login_user, logout_user, login_required, current_user

from inventory_pro.extensions import db
from inventory_pro.models import User
from inventory_pro.blueprints.auth import auth_bp
from inventory_pro.blueprints.auth.forms import LoginForm

logger = logging.getLogger(__name__)


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    # 如果已登录，直接跳到首页
    if current_user.is_authenticated:
        return redirect(url_for('main.index'))

    form = LoginForm()
    if form.validate_on_submit():
        user = User.query.filter_by(email=form.email.data.strip().lower()).first()

        # 1. 验证用户与密码
        if user is None or not user.verify_password(form.password.data):
            logger.warning('登录失败: %s', form.email.data)
            flash('邮箱或密码错误。', 'danger')
            return redirect(url_for('auth.login'))

        # 2. 验证用户是否被软删除或封禁
        if not user.is_active:
            flash('该账户已停用，请联系管理员。', 'danger')
            return redirect(url_for('auth.login'))

        # 3. 执行登录
        login_user(user, remember=form.remember_me.data)
        user.last_login = datetime.utcnow()
        db.session.commit()

        # 4. 处理 Next 跳转 (防止开放重定向)
        next_page = request.args.get('next')
        if not next_page or urlsplit(next_page).netloc != '':
            next_page = url_for('main.index')

        flash(f'欢迎回来，{user.name or user.email}。', 'success')
        return redirect(next_page)

    return render_template('auth/login.html', form=form)


@auth_bp.route('/logout')
@login_required
def logout():
    logout_user()
    flash('您已安全退出。', 'info')
    return redirect(url_for('auth.login'))

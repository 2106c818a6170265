from flask_wtf import FlaskForm
from wtforms import StringField, PasswordField, BooleanField, SubmitField
from wtforms.validators import DataRequired, Email


class LoginForm(FlaskForm):
    """用户登录表单"""
    email = StringField('电子邮箱', validators=[
        DataRequired(message="请输入邮箱地址"),
        Email(message="邮箱格式不正确")
    ])
    password = PasswordField('密码', validators=[
        DataRequired(message="请输入密码")
    ])
    remember_me = BooleanField('保持登录')
    submit = SubmitField('登录')

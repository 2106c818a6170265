from faker import Faker
from faker.providers import BaseProvider


class InventoryProvider(BaseProvider):
    """
    Inventory Pro 演示数据生成器
    生成商品名、供应商名、SKU 与地点名
    """

    # 商品品类
    product_kinds = [
        '无线鼠标', '机械键盘', '显示器支架', 'USB-C 扩展坞', '蓝牙耳机',
        '移动电源', '数据线', '笔记本支架', '网络摄像头', '办公椅',
        '台灯', '收纳箱', '保温杯', '打印纸', '签字笔',
    ]

    # 型号修饰
    product_variants = ['标准版', '专业版', 'Mini', 'Plus', 'Max', '黑色', '白色', '灰色']

    # 公司后缀
    company_suffixes = ['贸易', '电子', '科技', '实业', '供应链', '商贸']

    # 分类 / 品牌 / 单位 / 税率模板
    category_names = ['电脑外设', '办公家具', '生活用品', '办公耗材']
    brand_names = ['Lumen', 'Orbit', 'Northwind', '青木']
    units = [('个', 'pcs'), ('盒', 'box'), ('包', 'pack')]
    tax_templates = [('零税率', 0), ('增值税 6%', 6), ('增值税 13%', 13)]

    # 地点
    location_names = [
        ('中央仓库', 'WAREHOUSE'),
        ('华东分仓', 'WAREHOUSE'),
        ('旗舰门店', 'SHOP'),
        ('社区门店', 'SHOP'),
        ('在途虚拟库', 'VIRTUAL'),
    ]

    def product_name(self):
        """生成商品名"""
        return f"{self.random_element(self.product_kinds)} {self.random_element(self.product_variants)}"

    def supplier_company(self):
        prefix = self.generator.city_name()
        return f"{prefix}{self.random_element(self.company_suffixes)}有限公司"

    def sku_code(self, index):
        return f"SKU-{self.random_uppercase_letter()}{self.random_uppercase_letter()}-{index:05d}"


# 初始化 Faker 并添加自定义 Provider
fake = Faker('zh_CN')
fake.add_provider(InventoryProvider)

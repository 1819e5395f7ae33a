"""
促销（活动/优惠券/买赠）数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from app.core.database import Base


class SalesCampaignDB(Base):
    """促销活动数据库表"""

    __tablename__ = "sales_campaigns"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(String(50), primary_key=True, comment="活动ID")
    name = Column(String(255), nullable=False, comment="活动名称")
    description = Column(Text, comment="活动描述")
    campaign_type = Column(String(30), nullable=False, default="discount", comment="活动类型")

    # 活动时间
    start_date = Column(DateTime(timezone=True), nullable=False, index=True, comment="开始时间")
    end_date = Column(DateTime(timezone=True), nullable=False, index=True, comment="结束时间")

    status = Column(String(20), nullable=False, default="draft", index=True, comment="活动状态")

    # 折扣配置
    discount_type = Column(String(20), nullable=False, comment="折扣类型")
    discount_value = Column(Numeric(10, 2), nullable=False, default=0, comment="折扣值")
    max_discount_amount = Column(Numeric(10, 2), comment="最大折扣金额")

    # 使用限制
    usage_limit = Column(Integer, comment="总使用次数限制")
    usage_count = Column(Integer, nullable=False, default=0, comment="已使用次数（缓存值，以使用记录为准）")
    usage_limit_per_customer = Column(Integer, comment="单用户使用次数限制")

    # 最低要求
    minimum_order_amount = Column(Numeric(10, 2), comment="最低订单金额")
    minimum_quantity = Column(Integer, comment="最低购买数量")

    applies_to = Column(String(20), nullable=False, default="all", comment="适用范围")
    configuration = Column(JSON, comment="按活动类型区分的扩展配置")

    # 审计字段
    created_by = Column(String(50), nullable=False, comment="创建人")
    updated_by = Column(String(50), comment="更新人")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        {'comment': '促销活动表'}
    )


class CampaignProductDB(Base):
    """活动-商品关联表"""

    __tablename__ = "campaign_products"

    campaign_id = Column(String(50), ForeignKey("sales_campaigns.id", ondelete="CASCADE"), primary_key=True)
    product_id = Column(String(50), primary_key=True, index=True)


class CampaignCategoryDB(Base):
    """活动-分类关联表"""

    __tablename__ = "campaign_categories"

    campaign_id = Column(String(50), ForeignKey("sales_campaigns.id", ondelete="CASCADE"), primary_key=True)
    category_id = Column(String(50), primary_key=True, index=True)


class CouponDB(Base):
    """优惠券数据库表"""

    __tablename__ = "coupon_codes"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(String(50), primary_key=True, comment="优惠券ID")
    campaign_id = Column(String(50), ForeignKey("sales_campaigns.id", ondelete="SET NULL"), comment="所属活动ID")
    code = Column(String(50), nullable=False, unique=True, index=True, comment="优惠券代码（大写存储）")
    name = Column(String(255), nullable=False, comment="优惠券名称")
    description = Column(Text, comment="优惠券描述")

    # 折扣配置
    discount_type = Column(String(20), nullable=False, comment="折扣类型")
    discount_value = Column(Numeric(10, 2), nullable=False, comment="折扣值")
    max_discount_amount = Column(Numeric(10, 2), comment="最大折扣金额")

    # 使用限制
    usage_limit = Column(Integer, comment="总使用次数限制")
    usage_count = Column(Integer, nullable=False, default=0, comment="已使用次数（缓存值，以使用记录为准）")
    usage_limit_per_customer = Column(Integer, comment="单用户使用次数限制")

    # 有效期
    valid_from = Column(DateTime(timezone=True), nullable=False, index=True, comment="有效开始时间")
    valid_until = Column(DateTime(timezone=True), index=True, comment="有效结束时间，为空表示永久有效")

    minimum_order_amount = Column(Numeric(10, 2), comment="最低订单金额")
    applies_to = Column(String(30), nullable=False, default="all", comment="适用范围")
    status = Column(String(20), nullable=False, default="active", index=True, comment="优惠券状态")

    # 审计字段
    created_by = Column(String(50), nullable=False, comment="创建人")
    updated_by = Column(String(50), comment="更新人")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")
    deleted_at = Column(DateTime(timezone=True), comment="删除时间，删除后不再自动启用")

    __table_args__ = (
        {'comment': '优惠券表'}
    )


class CouponProductDB(Base):
    """优惠券-商品关联表"""

    __tablename__ = "coupon_products"

    coupon_id = Column(String(50), ForeignKey("coupon_codes.id", ondelete="CASCADE"), primary_key=True)
    product_id = Column(String(50), primary_key=True, index=True)


class CouponCategoryDB(Base):
    """优惠券-分类关联表"""

    __tablename__ = "coupon_categories"

    coupon_id = Column(String(50), ForeignKey("coupon_codes.id", ondelete="CASCADE"), primary_key=True)
    category_id = Column(String(50), primary_key=True, index=True)


class BogoOfferDB(Base):
    """买赠活动数据库表"""

    __tablename__ = "bogo_offers"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(String(50), primary_key=True, comment="买赠活动ID")
    campaign_id = Column(String(50), ForeignKey("sales_campaigns.id", ondelete="CASCADE"), comment="所属活动ID")
    name = Column(String(255), nullable=False, comment="名称")
    description = Column(Text, comment="描述")

    # 购买条件
    buy_quantity = Column(Integer, nullable=False, default=1, comment="需购买数量")
    buy_product_id = Column(String(50), comment="需购买商品")
    buy_category_id = Column(String(50), comment="需购买分类")

    # 赠送内容
    get_quantity = Column(Integer, nullable=False, default=1, comment="赠送数量")
    get_product_id = Column(String(50), comment="赠送商品")
    get_category_id = Column(String(50), comment="赠送分类")
    get_discount_type = Column(String(20), nullable=False, default="free", comment="赠品折扣类型")
    get_discount_value = Column(Numeric(10, 2), default=0, comment="赠品折扣值")

    start_date = Column(DateTime(timezone=True), nullable=False, comment="开始时间")
    end_date = Column(DateTime(timezone=True), nullable=False, comment="结束时间")

    status = Column(String(20), nullable=False, default="active", index=True, comment="状态")
    usage_limit = Column(Integer, comment="总使用次数限制")
    usage_count = Column(Integer, nullable=False, default=0, comment="已使用次数（缓存值，以使用记录为准）")

    created_by = Column(String(50), nullable=False, comment="创建人")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        {'comment': '买赠活动表'}
    )


class PromotionUsageDB(Base):
    """促销使用记录表（只追加）"""

    __tablename__ = "promotion_usage"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(String(50), primary_key=True, comment="使用记录ID")
    promotion_type = Column(String(20), nullable=False, comment="促销类型 campaign/coupon/bogo")
    promotion_id = Column(String(50), nullable=False, index=True, comment="促销ID")
    promotion_code = Column(String(50), comment="优惠券代码")
    user_id = Column(String(50), nullable=False, index=True, comment="使用用户ID")
    order_id = Column(String(50), nullable=False, index=True, comment="关联订单ID")

    # 下单时的折扣快照，促销修改后订单明细不变
    promotion_name = Column(String(255), nullable=False, default="", comment="促销名称")
    discount_type = Column(String(20), nullable=False, default="", comment="折扣类型")
    discount_value = Column(Numeric(10, 2), nullable=False, default=0, comment="折扣值")
    free_shipping = Column(Boolean, nullable=False, default=False, comment="是否免运费")

    # 使用详情
    original_amount = Column(Numeric(12, 2), nullable=False, default=0, comment="原始金额")
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0, comment="折扣金额")
    final_amount = Column(Numeric(12, 2), nullable=False, default=0, comment="最终金额")

    # 买赠详情
    buy_product_id = Column(String(50), comment="购买商品")
    get_product_id = Column(String(50), comment="赠送商品")
    buy_quantity = Column(Integer, comment="购买数量")
    get_quantity = Column(Integer, comment="赠送数量")

    ip_address = Column(String(45), comment="IP地址")
    user_agent = Column(Text, comment="User-Agent")
    used_at = Column(DateTime(timezone=True), server_default=func.now(), comment="使用时间")

    __table_args__ = (
        UniqueConstraint("promotion_type", "promotion_id", "order_id", name="uq_promotion_usage_order"),
        {'comment': '促销使用记录表'}
    )

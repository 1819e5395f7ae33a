"""
促销相关数据模型
活动(Campaign)、优惠券(Coupon)、买赠(BOGO)共享同一套可评估字段
"""

from decimal import Decimal
from datetime import datetime
from typing import Annotated, ClassVar, List, Literal, Optional, Tuple, Union
from pydantic import BaseModel, Field, validator
from enum import Enum


class PromotionType(str, Enum):
    """促销类型枚举"""
    CAMPAIGN = "campaign"
    COUPON = "coupon"
    BOGO = "bogo"


class DiscountType(str, Enum):
    """折扣计算类型枚举"""
    PERCENTAGE = "percentage"  # 百分比折扣
    FIXED_AMOUNT = "fixed_amount"  # 固定金额
    FREE_SHIPPING = "free_shipping"  # 免运费（运费计算处单独处理）


class GetDiscountType(str, Enum):
    """买赠赠品折扣类型"""
    FREE = "free"
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class CampaignType(str, Enum):
    """活动类型枚举"""
    DISCOUNT = "discount"
    BOGO = "bogo"
    CATEGORY_SALE = "category_sale"
    PRODUCT_BUNDLE = "product_bundle"
    FLASH_SALE = "flash_sale"


class CampaignStatus(str, Enum):
    """活动状态枚举"""
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class CouponStatus(str, Enum):
    """优惠券状态枚举"""
    ACTIVE = "active"  # 有效
    INACTIVE = "inactive"  # 停用
    EXPIRED = "expired"  # 已过期
    USED_UP = "used_up"  # 已用完


class BogoStatus(str, Enum):
    """买赠状态枚举"""
    ACTIVE = "active"
    INACTIVE = "inactive"


class AppliesTo(str, Enum):
    """适用范围枚举（first_order / returning_customers 仅优惠券可用）"""
    ALL = "all"
    PRODUCTS = "products"
    CATEGORIES = "categories"
    FIRST_ORDER = "first_order"
    RETURNING_CUSTOMERS = "returning_customers"


class IneligibilityReason(str, Enum):
    """不满足使用条件的原因"""
    NOT_FOUND = "not_found"
    NOT_ACTIVE = "not_active"
    NOT_YET_VALID = "not_yet_valid"
    EXPIRED = "expired"
    USAGE_LIMIT_REACHED = "usage_limit_reached"
    PER_CUSTOMER_LIMIT_REACHED = "per_customer_limit_reached"
    MINIMUM_ORDER_AMOUNT = "minimum_order_amount"
    MINIMUM_QUANTITY = "minimum_quantity"
    NOT_APPLICABLE = "not_applicable"
    CUSTOMER_NOT_ELIGIBLE = "customer_not_eligible"


# ---------------------------------------------------------------------------
# 活动扩展配置（按 campaign_type 区分）
# ---------------------------------------------------------------------------

class DiscountCampaignConfig(BaseModel):
    campaign_type: Literal["discount"] = "discount"
    badge_text: Optional[str] = Field(None, max_length=50, description="商品角标文案")


class BogoCampaignConfig(BaseModel):
    campaign_type: Literal["bogo"] = "bogo"
    badge_text: Optional[str] = Field(None, max_length=50)
    bogo_offer_ids: List[str] = Field(default_factory=list, description="关联的买赠活动")


class CategorySaleConfig(BaseModel):
    campaign_type: Literal["category_sale"] = "category_sale"
    badge_text: Optional[str] = Field(None, max_length=50)
    banner_url: Optional[str] = Field(None, description="分类页横幅")


class ProductBundleConfig(BaseModel):
    campaign_type: Literal["product_bundle"] = "product_bundle"
    bundle_product_ids: List[str] = Field(default_factory=list, description="组合商品")
    require_all_products: bool = Field(default=True, description="是否需购买全部组合商品")


class FlashSaleConfig(BaseModel):
    campaign_type: Literal["flash_sale"] = "flash_sale"
    show_countdown: bool = True
    max_units_per_order: Optional[int] = Field(None, ge=1)


CampaignConfiguration = Annotated[
    Union[DiscountCampaignConfig, BogoCampaignConfig, CategorySaleConfig, ProductBundleConfig, FlashSaleConfig],
    Field(discriminator="campaign_type")
]


# ---------------------------------------------------------------------------
# 可评估促销
# ---------------------------------------------------------------------------

class Promotion(BaseModel):
    """
    促销公共字段
    资格评估只依赖这里定义的字段和方法，三种促销共用一个评估器
    """

    promotion_type: ClassVar[PromotionType]
    label: ClassVar[str] = "Promotion"
    # 有效期起止字段名，各子类字段命名不同
    window_fields: ClassVar[Tuple[str, str]] = ("start_date", "end_date")

    id: str = Field(..., description="促销ID")
    name: str = Field(..., description="名称")
    description: Optional[str] = Field(None, description="描述")
    usage_limit: Optional[int] = Field(None, ge=1, description="总使用次数限制")
    usage_count: int = Field(default=0, ge=0, description="已使用次数（缓存值）")
    usage_limit_per_customer: Optional[int] = Field(None, ge=1, description="单用户使用次数限制")
    minimum_order_amount: Optional[Decimal] = Field(None, ge=0, description="最低订单金额")
    applies_to: AppliesTo = Field(default=AppliesTo.ALL, description="适用范围")
    product_ids: List[str] = Field(default_factory=list, description="适用商品ID")
    category_ids: List[str] = Field(default_factory=list, description="适用分类ID")
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def window_start(self) -> Optional[datetime]:
        return getattr(self, self.window_fields[0], None)

    @property
    def window_end(self) -> Optional[datetime]:
        return getattr(self, self.window_fields[1], None)

    @property
    def required_quantity(self) -> Optional[int]:
        """最低购买数量，无要求时为None"""
        return None

    def is_active_status(self) -> bool:
        return self.status == "active"

    def applicability(self):
        """返回 (适用范围, 商品ID集合, 分类ID集合)"""
        return self.applies_to, set(self.product_ids), set(self.category_ids)


class Campaign(Promotion):
    """促销活动模型"""

    promotion_type: ClassVar[PromotionType] = PromotionType.CAMPAIGN
    label: ClassVar[str] = "Campaign"

    campaign_type: CampaignType = Field(default=CampaignType.DISCOUNT)
    start_date: datetime = Field(..., description="开始时间")
    end_date: datetime = Field(..., description="结束时间")
    status: CampaignStatus = Field(default=CampaignStatus.DRAFT)
    discount_type: DiscountType = Field(..., description="折扣类型")
    discount_value: Decimal = Field(..., ge=0, description="折扣值")
    max_discount_amount: Optional[Decimal] = Field(None, ge=0, description="最大折扣金额")
    minimum_quantity: Optional[int] = Field(None, ge=1, description="最低购买数量")
    configuration: Optional[CampaignConfiguration] = None

    @validator('configuration')
    def validate_configuration(cls, v, values):
        """活动配置需与活动类型一致"""
        if v is not None and 'campaign_type' in values and v.campaign_type != values['campaign_type']:
            raise ValueError('活动配置类型与活动类型不一致')
        return v

    @property
    def required_quantity(self) -> Optional[int]:
        return self.minimum_quantity


class Coupon(Promotion):
    """优惠券模型"""

    promotion_type: ClassVar[PromotionType] = PromotionType.COUPON
    label: ClassVar[str] = "Coupon"
    window_fields: ClassVar[Tuple[str, str]] = ("valid_from", "valid_until")

    code: str = Field(..., min_length=1, max_length=50, description="优惠券代码")
    campaign_id: Optional[str] = Field(None, description="所属活动ID")
    discount_type: DiscountType = Field(..., description="折扣类型")
    discount_value: Decimal = Field(..., ge=0, description="折扣值")
    max_discount_amount: Optional[Decimal] = Field(None, ge=0, description="最大折扣金额")
    valid_from: datetime = Field(..., description="有效开始时间")
    valid_until: Optional[datetime] = Field(None, description="有效结束时间，为空表示永久有效")
    status: CouponStatus = Field(default=CouponStatus.ACTIVE)


class BogoOffer(Promotion):
    """买赠活动模型"""

    promotion_type: ClassVar[PromotionType] = PromotionType.BOGO
    label: ClassVar[str] = "BOGO offer"

    campaign_id: Optional[str] = None
    buy_quantity: int = Field(default=1, ge=1, description="需购买数量")
    buy_product_id: Optional[str] = None
    buy_category_id: Optional[str] = None
    get_quantity: int = Field(default=1, ge=1, description="赠送数量")
    get_product_id: Optional[str] = None
    get_category_id: Optional[str] = None
    get_discount_type: GetDiscountType = Field(default=GetDiscountType.FREE)
    get_discount_value: Decimal = Field(default=Decimal("0"), ge=0)
    start_date: datetime
    end_date: datetime
    status: BogoStatus = Field(default=BogoStatus.ACTIVE)

    @property
    def required_quantity(self) -> Optional[int]:
        return self.buy_quantity

    def applicability(self):
        # 买赠的适用范围由购买目标决定
        if self.buy_product_id:
            return AppliesTo.PRODUCTS, {self.buy_product_id}, set()
        return AppliesTo.CATEGORIES, set(), {self.buy_category_id}

    def matches_buy(self, product_id: str, category_id: Optional[str]) -> bool:
        return (
            (self.buy_product_id is not None and product_id == self.buy_product_id) or
            (self.buy_category_id is not None and category_id == self.buy_category_id)
        )

    def matches_get(self, product_id: str, category_id: Optional[str]) -> bool:
        return (
            (self.get_product_id is not None and product_id == self.get_product_id) or
            (self.get_category_id is not None and category_id == self.get_category_id)
        )


# ---------------------------------------------------------------------------
# 资格评估
# ---------------------------------------------------------------------------

class EligibilityContext(BaseModel):
    """资格评估上下文"""

    user_id: str
    order_amount: Decimal = Field(..., ge=0)
    quantity: int = Field(default=0, ge=0)
    product_ids: List[str] = Field(default_factory=list)
    category_ids: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.now)
    previous_order_count: Optional[int] = Field(None, ge=0, description="历史有效订单数，客群类优惠券使用")


class EligibilityResult(BaseModel):
    """资格评估结果"""

    is_valid: bool
    reason: Optional[IneligibilityReason] = None
    error_message: Optional[str] = None

    @classmethod
    def ok(cls) -> "EligibilityResult":
        return cls(is_valid=True)

    @classmethod
    def fail(cls, reason: IneligibilityReason, message: str) -> "EligibilityResult":
        return cls(is_valid=False, reason=reason, error_message=message)


class CouponValidation(BaseModel):
    """优惠券验证结果"""

    code: Optional[str] = Field(None, description="校验的优惠券代码")
    is_valid: bool = Field(..., description="是否有效")
    discount_amount: Decimal = Field(default=Decimal("0"), description="折扣金额")
    error_message: Optional[str] = Field(None, description="错误信息")
    reason: Optional[IneligibilityReason] = None
    coupon_id: Optional[str] = None
    coupon: Optional[Coupon] = None


class CouponSearchResult(BaseModel):
    """优惠券分页查询结果"""

    coupons: List[Coupon] = Field(default_factory=list)
    total: int = 0


class PopularCoupon(BaseModel):
    """按使用次数排序的优惠券"""

    coupon: Coupon
    total_uses: int = 0
    total_discount: Decimal = Decimal("0")


# ---------------------------------------------------------------------------
# 折扣明细
# ---------------------------------------------------------------------------

class BogoRequest(BaseModel):
    """客户端请求的买赠组合"""

    bogo_id: str
    buy_product_id: str
    buy_quantity: int = Field(..., ge=1)
    get_product_id: Optional[str] = None


class AppliedDiscount(BaseModel):
    """已生效的单项折扣"""

    promotion_type: PromotionType
    promotion_id: str
    promotion_code: Optional[str] = None
    name: str
    discount_type: str
    discount_value: Decimal = Decimal("0")
    original_amount: Decimal
    discount_amount: Decimal
    free_shipping: bool = False

    # 买赠详情
    buy_product_id: Optional[str] = None
    get_product_id: Optional[str] = None
    buy_quantity: Optional[int] = None
    get_quantity: Optional[int] = None


class IneligiblePromotion(BaseModel):
    """未生效的促销及原因"""

    promotion_type: PromotionType
    promotion_id: Optional[str] = None
    promotion_code: Optional[str] = None
    reason: IneligibilityReason
    error_message: str
    explicitly_requested: bool = True


class OrderTotals(BaseModel):
    """订单金额计算结果"""

    subtotal: Decimal
    total_quantity: int
    discount_breakdown: List[AppliedDiscount] = Field(default_factory=list)
    ineligible: List[IneligiblePromotion] = Field(default_factory=list)
    total_discount: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    shipping_amount: Decimal = Decimal("0")
    free_shipping: bool = False
    total: Decimal

    def rejected_explicit(self) -> List[IneligiblePromotion]:
        """用户主动选择但未生效的优惠券/活动"""
        return [
            item for item in self.ineligible
            if item.explicitly_requested and item.promotion_type != PromotionType.BOGO
        ]


class ApplicableDiscount(BaseModel):
    """购物车可用折扣列表项"""

    promotion_type: PromotionType
    promotion_id: str
    promotion_code: Optional[str] = None
    name: str
    is_valid: bool
    discount_amount: Decimal = Decimal("0")
    reason: Optional[IneligibilityReason] = None
    error_message: Optional[str] = None


class UsageRecord(BaseModel):
    """促销使用记录"""

    id: str
    promotion_type: PromotionType
    promotion_id: str
    promotion_code: Optional[str] = None
    user_id: str
    order_id: str
    promotion_name: str = ""
    discount_type: str = ""
    discount_value: Decimal = Decimal("0")
    free_shipping: bool = False
    original_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    buy_product_id: Optional[str] = None
    get_product_id: Optional[str] = None
    buy_quantity: Optional[int] = None
    get_quantity: Optional[int] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    used_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# 管理端请求模型
# ---------------------------------------------------------------------------

class CouponCreate(BaseModel):
    """创建优惠券模型"""

    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(...)
    description: Optional[str] = Field(None, max_length=500)
    campaign_id: Optional[str] = None
    discount_type: DiscountType = Field(...)
    discount_value: Decimal = Field(..., ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    usage_limit_per_customer: Optional[int] = Field(None, ge=1)
    valid_from: datetime = Field(default_factory=datetime.now)
    valid_until: Optional[datetime] = None
    minimum_order_amount: Optional[Decimal] = Field(None, ge=0)
    applies_to: AppliesTo = AppliesTo.ALL
    product_ids: List[str] = Field(default_factory=list)
    category_ids: List[str] = Field(default_factory=list)
    status: CouponStatus = CouponStatus.ACTIVE

    @validator('code')
    def normalize_code(cls, v):
        """优惠券代码统一大写存储"""
        return v.strip().upper()

    @validator('valid_until')
    def validate_validity_period(cls, v, values):
        """验证有效期"""
        if v is not None and 'valid_from' in values and v <= values['valid_from']:
            raise ValueError('结束时间必须晚于开始时间')
        return v

    @validator('discount_value')
    def validate_discount_value(cls, v, values):
        """验证折扣值"""
        if values.get('discount_type') == DiscountType.PERCENTAGE and v > Decimal('100'):
            raise ValueError('百分比折扣值不能超过100')
        return v


class CouponUpdate(BaseModel):
    """更新优惠券模型，仅提交的字段会被更新"""

    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = None
    description: Optional[str] = Field(None, max_length=500)
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    usage_limit_per_customer: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    minimum_order_amount: Optional[Decimal] = Field(None, ge=0)
    applies_to: Optional[AppliesTo] = None
    status: Optional[CouponStatus] = None
    product_ids: Optional[List[str]] = None
    category_ids: Optional[List[str]] = None

    @validator('code')
    def normalize_code(cls, v):
        return v.strip().upper() if v else v


class CampaignCreate(BaseModel):
    """创建活动模型"""

    name: str
    description: Optional[str] = None
    campaign_type: CampaignType = CampaignType.DISCOUNT
    start_date: datetime
    end_date: datetime
    status: CampaignStatus = CampaignStatus.DRAFT
    discount_type: DiscountType
    discount_value: Decimal = Field(..., ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    usage_limit_per_customer: Optional[int] = Field(None, ge=1)
    minimum_order_amount: Optional[Decimal] = Field(None, ge=0)
    minimum_quantity: Optional[int] = Field(None, ge=1)
    applies_to: AppliesTo = AppliesTo.ALL
    product_ids: List[str] = Field(default_factory=list)
    category_ids: List[str] = Field(default_factory=list)
    configuration: Optional[CampaignConfiguration] = None

    @validator('configuration')
    def validate_configuration(cls, v, values):
        """活动配置需与活动类型一致"""
        if v is not None and 'campaign_type' in values and v.campaign_type != values['campaign_type']:
            raise ValueError('活动配置类型与活动类型不一致')
        return v

    @validator('end_date')
    def validate_date_range(cls, v, values):
        if 'start_date' in values and v <= values['start_date']:
            raise ValueError('结束时间必须晚于开始时间')
        return v

    @validator('discount_type')
    def validate_discount_type(cls, v):
        if v == DiscountType.FREE_SHIPPING:
            raise ValueError('活动不支持免运费折扣')
        return v

    @validator('applies_to')
    def validate_applies_to(cls, v):
        if v in (AppliesTo.FIRST_ORDER, AppliesTo.RETURNING_CUSTOMERS):
            raise ValueError('客群类适用范围仅优惠券可用')
        return v


class CampaignUpdate(BaseModel):
    """更新活动模型，仅提交的字段会被更新"""

    name: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: Optional[CampaignStatus] = None
    discount_value: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    usage_limit_per_customer: Optional[int] = Field(None, ge=1)
    minimum_order_amount: Optional[Decimal] = Field(None, ge=0)
    minimum_quantity: Optional[int] = Field(None, ge=1)
    product_ids: Optional[List[str]] = None
    category_ids: Optional[List[str]] = None


class BogoOfferCreate(BaseModel):
    """创建买赠活动模型"""

    name: str
    description: Optional[str] = None
    campaign_id: Optional[str] = None
    buy_quantity: int = Field(default=1, ge=1)
    buy_product_id: Optional[str] = None
    buy_category_id: Optional[str] = None
    get_quantity: int = Field(default=1, ge=1)
    get_product_id: Optional[str] = None
    get_category_id: Optional[str] = None
    get_discount_type: GetDiscountType = GetDiscountType.FREE
    get_discount_value: Decimal = Field(default=Decimal("0"), ge=0)
    start_date: datetime
    end_date: datetime
    status: BogoStatus = BogoStatus.ACTIVE
    usage_limit: Optional[int] = Field(None, ge=1)

    @validator('get_category_id', always=True)
    def validate_targets(cls, v, values):
        """购买目标和赠送目标都必须至少指定商品或分类之一"""
        if not (values.get('buy_product_id') or values.get('buy_category_id')):
            raise ValueError('必须指定购买商品或购买分类')
        if not (values.get('get_product_id') or v):
            raise ValueError('必须指定赠送商品或赠送分类')
        return v

    @validator('end_date')
    def validate_date_range(cls, v, values):
        if 'start_date' in values and v <= values['start_date']:
            raise ValueError('结束时间必须晚于开始时间')
        return v


class CouponValidateRequest(BaseModel):
    """校验优惠券请求模型"""

    code: str = Field(..., min_length=1, max_length=50)
    order_amount: Decimal = Field(..., ge=0)
    quantity: int = Field(default=0, ge=0)
    product_ids: List[str] = Field(default_factory=list)
    category_ids: List[str] = Field(default_factory=list)


class CouponBatchValidateRequest(BaseModel):
    """批量校验优惠券请求模型"""

    codes: List[str] = Field(..., min_length=1, max_length=20)
    order_amount: Decimal = Field(..., ge=0)
    quantity: int = Field(default=0, ge=0)
    product_ids: List[str] = Field(default_factory=list)
    category_ids: List[str] = Field(default_factory=list)

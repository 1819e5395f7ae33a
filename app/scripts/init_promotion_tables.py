"""
促销引擎数据库表初始化脚本

运行方式:
python -m app.scripts.init_promotion_tables
python -m app.scripts.init_promotion_tables --refresh-statuses
"""

import argparse
import asyncio
import logging

from app.core.database import init_database, close_database, create_all_tables, session_scope

logger = logging.getLogger(__name__)


async def create_promotion_tables():
    """创建商品、购物车、订单、促销相关数据表"""
    try:
        await init_database()
        logger.info("开始创建促销引擎数据表...")
        await create_all_tables()
        logger.info("促销引擎数据库初始化完成")
    except Exception as e:
        logger.error(f"创建数据表失败: {e}")
        raise
    finally:
        await close_database()


async def refresh_promotion_statuses():
    """按当前时间批量刷新活动和优惠券状态（可由定时任务调用）"""
    from app.services.promotion_service import PromotionService

    try:
        await init_database()
        async with session_scope() as session:
            service = PromotionService.from_session(session)
            campaign_result = await service.campaign_service.update_campaign_statuses()
            coupon_result = await service.coupon_service.update_coupon_statuses()
        logger.info(f"活动状态: {campaign_result} 优惠券状态: {coupon_result}")
    finally:
        await close_database()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    parser = argparse.ArgumentParser(description="促销引擎数据库维护")
    parser.add_argument("--refresh-statuses", action="store_true", help="刷新活动和优惠券状态")
    args = parser.parse_args()

    if args.refresh_statuses:
        asyncio.run(refresh_promotion_statuses())
    else:
        asyncio.run(create_promotion_tables())

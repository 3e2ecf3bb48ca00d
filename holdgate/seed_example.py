import argparse

from sqlalchemy import select

from holdgate.db import SessionLocal, engine
from holdgate.models import Base, ProductNote, ShopInstallation
from holdgate.services.settings_service import update_app_setting


def seed(shop: str) -> None:
    Base.metadata.create_all(engine)
    with SessionLocal() as db:
        installation = db.execute(
            select(ShopInstallation).where(ShopInstallation.shop_domain == shop)
        ).scalar_one_or_none()
        if not installation:
            db.add(ShopInstallation(shop_domain=shop, access_token='mock-offline-token', scope='read_orders'))

        update_app_setting(db, shop=shop, block_fulfillment=True)

        sample_product = 'gid://shopify/Product/1001'
        has_notes = db.execute(
            select(ProductNote.id).where(ProductNote.shop_domain == shop, ProductNote.product_id == sample_product)
        ).first()
        if not has_notes:
            db.add(
                ProductNote(
                    shop_domain=shop,
                    product_id=sample_product,
                    content='Fragile: double-box and add a packing slip warning.',
                    created_by='seed',
                    updated_by='seed',
                )
            )
        db.commit()


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Seed a development shop with settings and a sample note')
    parser.add_argument('--shop', default='dev-shop.myshopify.com')
    args = parser.parse_args()
    seed(args.shop)
    print(f'Seed data inserted/verified for {args.shop}.')

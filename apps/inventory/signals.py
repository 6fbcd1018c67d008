import logging

from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)

# Sent after the movement's transaction commits.
# kwargs: product, stock, min_stock, log
stock_low = Signal()
stock_out = Signal()


@receiver(stock_low)
def log_low_stock(sender, product, stock, min_stock, **kwargs):
    logger.warning("Low stock: %s at %s (min %s)", product.sku, stock, min_stock)


@receiver(stock_out)
def log_out_of_stock(sender, product, **kwargs):
    logger.warning("Out of stock: %s", product.sku)

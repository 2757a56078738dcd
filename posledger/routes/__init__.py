from .system import system_bp
from .products import products_bp
from .stock import stock_bp
from .sales import sales_bp
from .returns import returns_bp
from .cash import cash_bp
from .categories import categories_bp
from .purchases import purchases_bp
from .opnames import opnames_bp

ALL_BLUEPRINTS = (
    system_bp,
    products_bp,
    stock_bp,
    sales_bp,
    returns_bp,
    cash_bp,
    categories_bp,
    purchases_bp,
    opnames_bp,
)

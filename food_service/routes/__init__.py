from .auth import router as auth_router, users_router
from .locations import router as locations_router
from .orders import router as orders_router
from .restaurants import admin_router, router as restaurants_router
from .reviews import router as reviews_router
from .sales import router as sales_router

ROUTERS = [
    auth_router,
    users_router,
    locations_router,
    restaurants_router,
    orders_router,
    sales_router,
    reviews_router,
    admin_router,
]

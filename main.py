from fastapi import FastAPI

from services.order_service.main import order_app
from services.order_service.main import startup_event as order_startup, shutdown_event as order_shutdown

app = FastAPI(title="Ecommerce Cluster")


# Mounted sub-apps do not receive lifespan events: forward them
@app.on_event("startup")
async def startup_event():
    await order_startup()


@app.on_event("shutdown")
async def shutdown_event():
    await order_shutdown()


app.mount("/orders", order_app)

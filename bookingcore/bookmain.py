from fastapi import FastAPI
from bookingcore.routers import rou_booking, rou_device
from bookingcore.configuration.monitor import instrument_fastapi

app = FastAPI(
    title="Booking Core API",
    description="Bookings between clients and businesses with push notifications",
    version="1.0.0"
)

# Include all routers
app.include_router(rou_booking.router)
app.include_router(rou_device.router)

# Instrument app with Azure Monitor
instrument_fastapi(app)

if __name__ == '__main__':
    import uvicorn
    uvicorn.run(app, host='0.0.0.0', port=8000)

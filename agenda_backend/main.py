import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from agenda_backend.core import config
from agenda_backend.database import Base, engine, ensure_appointment_schema
from agenda_backend.models import appointment, consultation, patient_link, schedule_config, subscription, user  # noqa: F401
from agenda_backend.routes import agenda_routes, subscription_routes

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logging.getLogger('httpx').setLevel(logging.WARNING)
logging.getLogger('httpcore').setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

app = FastAPI(title='Agenda API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and Postgres credentials.')


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed fields share the 400 of the service-level ValidationError.
    logger.warning('Validation error on %s %s: %s', request.method, request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={'detail': jsonable_encoder(exc.errors())})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception('Unhandled error on %s %s', request.method, request.url.path)
    return JSONResponse(status_code=500, content={'detail': 'Internal server error.'})


@app.get('/')
def root():
    return {'status': 'Agenda API Running'}


app.include_router(agenda_routes.router, prefix='/agenda')
app.include_router(subscription_routes.router, prefix='/agenda')

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from daily_close.logging_config import configure_logging
from daily_close.routers import daily_close

configure_logging()

app = FastAPI(title='Branch Daily Close')

app.include_router(daily_close.router)


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /\n'

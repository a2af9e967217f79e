"""
Elastic Beanstalk entry point for the Verdict FastAPI application.
"""

from verdict.config import settings
from verdict.main import app

# Elastic Beanstalk looks for 'application' object
application = app

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(application, host=settings.app_host, port=settings.app_port)

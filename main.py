from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from trojan_deploy.api.v1 import api_router
from trojan_deploy.core.config import settings

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Trojan Deploy API",
    version="1.0.0"
)

# CORS配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    return {
        "message": "Trojan Deploy API is running",
        "docs_url": "/docs"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

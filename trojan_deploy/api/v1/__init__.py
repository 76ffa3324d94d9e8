from fastapi import APIRouter
from trojan_deploy.api.v1.endpoints import trojan

api_router = APIRouter()

# 注册路由
api_router.include_router(trojan.router, prefix="/trojan", tags=["Trojan部署"])

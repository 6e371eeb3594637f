import uvicorn
from mcp_oauth.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "mcp_oauth.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )

"""
URL configuration for Config project.

- /api/accounts/    注册、登录、个人信息与公开资料
- /api/challenges/  题目 CRUD、发布、提示与 Flag 提交
- /api/submissions/ 提交记录
- /api/scoreboard/  排行榜与个人排名
"""
from django.contrib import admin
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView, SpectacularRedocView

from apps.common.health import HealthCheckView

admin.site.site_header = "CTF Engine 管理后台"
admin.site.site_title = "CTF Engine"
admin.site.index_title = "管理控制台"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('health/', HealthCheckView.as_view()),
    path('api/accounts/', include('apps.accounts.urls')),
    path('api/challenges/', include('apps.challenges.urls')),
    path('api/submissions/', include('apps.submissions.urls')),
    path('api/scoreboard/', include('apps.scoreboard.urls')),
    # OpenAPI 文档
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/schema/swagger-ui/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
    path('api/schema/redoc/', SpectacularRedocView.as_view(url_name='schema'), name='redoc'),
]

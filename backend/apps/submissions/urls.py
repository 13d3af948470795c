from __future__ import annotations

from django.urls import path

from .views import SubmissionListView

app_name = "submissions"

# 路由：提交记录查询；提交 Flag 挂在 /api/challenges/<id>/submit/
urlpatterns = [
    path("", SubmissionListView.as_view(), name="list"),
]

from __future__ import annotations

from django.urls import path

from apps.submissions.views import SubmitFlagView

from .views import (
    ChallengeDetailView,
    ChallengeHintListView,
    ChallengeHintUseView,
    ChallengeListView,
    ChallengePublishView,
)

app_name = "challenges"

# 路由：题目 CRUD、发布、提示与 Flag 提交
urlpatterns = [
    path("", ChallengeListView.as_view(), name="list"),
    path("<int:challenge_id>/", ChallengeDetailView.as_view(), name="detail"),
    path("<int:challenge_id>/publish/", ChallengePublishView.as_view(), name="publish"),
    path("<int:challenge_id>/hints/", ChallengeHintListView.as_view(), name="hint-list"),
    path("<int:challenge_id>/hints/<int:hint_index>/", ChallengeHintUseView.as_view(), name="hint-use"),
    path("<int:challenge_id>/submit/", SubmitFlagView.as_view(), name="submit"),
]

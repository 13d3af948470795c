from __future__ import annotations

from django.urls import path

from .views import LeaderboardView, UserRankView

app_name = "scoreboard"

urlpatterns = [
    path("", LeaderboardView.as_view(), name="leaderboard"),
    path("users/<int:user_id>/rank/", UserRankView.as_view(), name="user-rank"),
]

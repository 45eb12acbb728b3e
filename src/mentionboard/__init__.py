"""Weekly topic-mention leaderboard built from X Recent Search."""

"""
UI Module - Discord UI Components

Available components:
- MatchupVoteView: vote buttons for the open matchups of a bracket round
- build_vote_views: one MatchupVoteView per group of matchups
"""

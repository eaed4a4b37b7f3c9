"""StoryReel — AI short-form video generation backend."""

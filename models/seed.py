"""
Starter catalogue loaded into an empty movies table.
"""
import logging

from models.movie import Movie

logger = logging.getLogger(__name__)

STARTER_MOVIES = [
    ("The Shawshank Redemption", "Frank Darabont", 9, 142),
    ("The Godfather", "Francis Ford Coppola", 9, 175),
    ("The Dark Knight", "Christopher Nolan", 9, 152),
    ("Pulp Fiction", "Quentin Tarantino", 8, 154),
    ("Forrest Gump", "Robert Zemeckis", 8, 142),
    ("Inception", "Christopher Nolan", 8, 148),
    ("The Matrix", "The Wachowskis", 8, 136),
    ("Goodfellas", "Martin Scorsese", 8, 146),
]


def seed_movies(store) -> int:
    """Insert the starter catalogue if no movie exists yet; returns rows added"""
    if store.count(Movie):
        return 0
    for name, realisator, rating, duration in STARTER_MOVIES:
        store.new(Movie(name=name, realisator=realisator, rating=rating, duration_minutes=duration))
    store.save()
    logger.info("Seeded %d movies", len(STARTER_MOVIES))
    return len(STARTER_MOVIES)

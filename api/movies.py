from __future__ import annotations

from typing import List, Tuple

from flask import Blueprint, request, jsonify, abort
from sqlalchemy import or_, func

from models import storage
from models.movie import Movie
from models.schemas.movie import MovieCreateSchema, MovieUpdateSchema, MovieOutSchema
from utils.decorators import jwt_required

bp = Blueprint("movies", __name__)

# Schemas
movie_create_schema = MovieCreateSchema()
movie_update_schema = MovieUpdateSchema()
movie_out_schema = MovieOutSchema()
movies_out_schema = MovieOutSchema(many=True)

# Sorting allowlist: API field -> SQLAlchemy column
SORT_COLUMNS = {
    "name": Movie.name,
    "rating": Movie.rating,
    "created_at": Movie.created_at,
}

MAX_LIMIT = 100


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "20"))
    except ValueError:
        abort(400, description="page and limit must be integers")
    page = max(page, 1)
    limit = max(1, min(limit, MAX_LIMIT))
    return page, limit


def parse_sort() -> List:
    sort_param = request.args.get("sort", "name")
    fields = [s.strip() for s in sort_param.split(",") if s.strip()]
    order_by = []
    for f in fields:
        desc = f.startswith("-")
        key = f[1:] if desc else f
        col = SORT_COLUMNS.get(key)
        if col is None:
            abort(400, description=f"Unsupported sort field: {key}")
        order_by.append(col.desc() if desc else col.asc())
    return order_by if order_by else [Movie.name.asc()]


def get_movie_or_404(movie_id: str) -> Movie:
    movie = storage.get(Movie, movie_id)
    if movie is None:
        abort(404)
    return movie


@bp.get("/movies")
def list_movies():
    """
    List movies with pagination, sorting and search
    ---
    tags:
      - Movies
    parameters:
      - in: query
        name: page
        type: integer
        default: 1
      - in: query
        name: limit
        type: integer
        default: 20
      - in: query
        name: sort
        type: string
        description: "Comma-separated fields; prefix with '-' for desc. Allowed: name, rating, created_at"
        default: "name"
      - in: query
        name: q
        type: string
        description: "Case-insensitive substring search on name and realisator"
    responses:
      200:
        description: List of movies
    """
    session = storage.get_session()
    page, limit = parse_pagination()
    order_by = parse_sort()

    query = session.query(Movie)
    q = request.args.get("q")
    if q:
        qnorm = f"%{q.strip().lower()}%"
        query = query.filter(
            or_(func.lower(Movie.name).like(qnorm), func.lower(Movie.realisator).like(qnorm))
        )

    total = query.count()
    rows = query.order_by(*order_by).offset((page - 1) * limit).limit(limit).all()

    return jsonify(
        {
            "data": movies_out_schema.dump(rows),
            "meta": {
                "page": page,
                "limit": limit,
                "total": total,
                "sort": request.args.get("sort", "name"),
            },
        }
    )


@bp.get("/movies/<movie_id>")
def get_movie(movie_id: str):
    """
    Get a single movie by id
    ---
    tags:
      - Movies
    parameters:
      - in: path
        name: movie_id
        type: string
        required: true
    responses:
      200:
        description: Movie found
      404:
        description: Not found
    """
    return jsonify({"data": movie_out_schema.dump(get_movie_or_404(movie_id))})


@bp.post("/movies")
@jwt_required()
def create_movie():
    """
    Create a new movie
    ---
    tags:
      - Movies
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            name: { type: string, maxLength: 200 }
            realisator: { type: string, maxLength: 100 }
            rating: { type: integer, minimum: 1, maximum: 10 }
            durationMinutes: { type: integer, minimum: 1, maximum: 600 }
    responses:
      201:
        description: Created
      400:
        description: Validation error
      401:
        description: Unauthorized
    """
    data = movie_create_schema.load(request.get_json(silent=True) or {})
    movie = Movie(**data)
    storage.new(movie)
    storage.save()
    return jsonify({"data": movie_out_schema.dump(movie)}), 201


@bp.patch("/movies/<movie_id>")
@jwt_required()
def update_movie(movie_id: str):
    """
    Update a movie (partial)
    ---
    tags:
      - Movies
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - in: path
        name: movie_id
        type: string
        required: true
      - in: body
        name: body
        required: true
        schema:
          type: object
    responses:
      200:
        description: Updated
      400:
        description: Validation error
      404:
        description: Not found
    """
    movie = get_movie_or_404(movie_id)
    data = movie_update_schema.load(request.get_json(silent=True) or {})
    for field, value in data.items():
        setattr(movie, field, value)
    storage.new(movie)
    storage.save()
    return jsonify({"data": movie_out_schema.dump(movie)})


@bp.delete("/movies/<movie_id>")
@jwt_required()
def delete_movie(movie_id: str):
    """
    Delete a movie
    ---
    tags:
      - Movies
    security:
      - Bearer: []
    parameters:
      - in: path
        name: movie_id
        type: string
        required: true
    responses:
      204:
        description: Deleted
      404:
        description: Not found
    """
    movie = get_movie_or_404(movie_id)
    storage.delete(movie)
    storage.save()
    return ("", 204)

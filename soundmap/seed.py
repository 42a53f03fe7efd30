from . import models, schemas

# Sample clips around Berlin's popular areas, owned by nobody
BERLIN_CLIPS = [
    # Alexanderplatz
    {"title": "Street Musician at Alex", "lat": 52.5219, "lng": 13.4132, "radius": 25,
     "url": "https://example.com/clip1.webm", "like_count": 15, "dislike_count": 2},
    {"title": "Tram Bell Symphony", "lat": 52.5215, "lng": 13.4125, "radius": 30,
     "url": "https://example.com/clip2.webm", "like_count": 8, "dislike_count": 1},
    # Brandenburg Gate
    {"title": "Tourist Chatter", "lat": 52.5163, "lng": 13.3777, "radius": 40,
     "url": "https://example.com/clip3.webm", "like_count": 12, "dislike_count": 3},
    {"title": "Horse Carriage Sounds", "lat": 52.5160, "lng": 13.3780, "radius": 35,
     "url": "https://example.com/clip4.webm", "like_count": 20, "dislike_count": 1},
    # Kreuzberg
    {"title": "Café Ambience", "lat": 52.4987, "lng": 13.4180, "radius": 20,
     "url": "https://example.com/clip5.webm", "like_count": 25, "dislike_count": 0},
    {"title": "Street Art Spray", "lat": 52.4990, "lng": 13.4175, "radius": 15,
     "url": "https://example.com/clip6.webm", "like_count": 7, "dislike_count": 4},
    # Prenzlauer Berg
    {"title": "Children Playing", "lat": 52.5482, "lng": 13.4050, "radius": 30,
     "url": "https://example.com/clip7.webm", "like_count": 18, "dislike_count": 1},
    {"title": "Bike Bell Chorus", "lat": 52.5485, "lng": 13.4045, "radius": 25,
     "url": "https://example.com/clip8.webm", "like_count": 11, "dislike_count": 2},
    # Mitte
    {"title": "Museum Island Footsteps", "lat": 52.5170, "lng": 13.4000, "radius": 35,
     "url": "https://example.com/clip9.webm", "like_count": 14, "dislike_count": 1},
    {"title": "River Spree Waves", "lat": 52.5175, "lng": 13.4005, "radius": 40,
     "url": "https://example.com/clip10.webm", "like_count": 22, "dislike_count": 0},
]

def seed_clips(db):
    """Insert the Berlin sample clips; returns their ids. Seeded radii may sit
    below the upload minimum, so rows are built directly rather than validated."""
    created = []
    for data in BERLIN_CLIPS:
        clip = models.Clip(**data)
        db.add(clip)
        created.append(clip)
    db.commit()
    return [schemas.Clip.model_validate(c).id for c in created]

from __future__ import annotations

from pathlib import Path
import zipfile

from PIL import Image
import pytest

from flashbacks.config import (
    AppConfig,
    CacheConfig,
    CollageConfig,
    LoggingConfig,
    MediaConfig,
    ServerConfig,
    TransitConfig,
    WeatherConfig,
)

COLORS = [
    (255, 0, 0),
    (0, 255, 0),
    (0, 0, 255),
    (255, 255, 0),
    (0, 255, 255),
    (255, 0, 255),
    (128, 128, 128),
    (255, 255, 255),
]

ALBUMS = {
    "2019": {"Lake": 3, "Birthday": 5},
    "2020": {"Hike": 8},
    "2021": {"Winter": 4},
}


def write_image(path: Path, color: tuple[int, int, int], size: tuple[int, int] = (40, 30), orientation: int | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    image = Image.new("RGB", size, color)
    if orientation is not None:
        exif = Image.Exif()
        exif[0x0112] = orientation
        image.save(path, format="JPEG", exif=exif.tobytes())
    else:
        image.save(path, format="PNG" if path.suffix.lower() == ".png" else "JPEG")
    return path


def write_gtfs_zip(path: Path, tables: dict[str, str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as archive:
        for name, text in tables.items():
            archive.writestr(name, text)
    return path


@pytest.fixture()
def photo_root(tmp_path: Path) -> Path:
    root = tmp_path / "media"
    for year, events in ALBUMS.items():
        for event, count in events.items():
            for index in range(count):
                write_image(root / year / event / f"img_{index:02d}.jpg", COLORS[index % len(COLORS)])
    (root / "#Recycle" / "junk").mkdir(parents=True)
    return root


def make_config(
    root_dir: Path,
    cache_dir: Path,
    stream_count: int = 6,
    transit: TransitConfig | None = None,
    weather: WeatherConfig | None = None,
    collage: CollageConfig | None = None,
) -> AppConfig:
    return AppConfig(
        media=MediaConfig(root_dir=root_dir, cache_dir=cache_dir, stream_count=stream_count),
        cache=CacheConfig(),
        collage=collage or CollageConfig(rows=2, cols=2, count=4, width=120, height=80, gap=2),
        transit=transit or TransitConfig(enabled=False),
        weather=weather or WeatherConfig(enabled=False),
        server=ServerConfig(),
        log=LoggingConfig(),
    )


GTFS_TABLES = {
    "stops.txt": (
        "stop_id,stop_name,stop_lat,stop_lon\n"
        "S1,Central Station,54.90,23.90\n"
        "S2,Central,54.91,23.91\n"
        "S3,Old Central Market,54.92,23.92\n"
        "S4,Umėdžių st.,54.93,23.93\n"
    ),
    "routes.txt": "route_id;route_short_name;route_long_name\nR1;7;Airport line\nR2;;Harbor line\n",
    "trips.txt": (
        "route_id,service_id,trip_id,trip_headsign\n"
        "R1,WEEK,T1,Airport\n"
        "R2,WEEK,T2,Harbor\n"
        "R1,EXTRA,T3,Special\n"
        "R9,WEEK,T4,Depot\n"
        "R1,WKND,T5,Beach\n"
    ),
    "calendar.txt": (
        "service_id,monday,tuesday,wednesday,thursday,friday,saturday,sunday,start_date,end_date\n"
        "WEEK,1,1,1,1,1,0,0,20240101,20241231\n"
        "WKND,0,0,0,0,0,1,1,20240101,20241231\n"
    ),
    "calendar_dates.txt": "service_id,date,exception_type\nWEEK,20240506,2\nEXTRA,20240507,1\n",
    "stop_times.txt": (
        "trip_id,arrival_time,departure_time,stop_id,stop_sequence\n"
        "T1,08:00:00,08:00:00,S2,1\n"
        "T2,08:30:00,08:30:00,S2,1\n"
        "T3,09:00:00,09:00:00,S2,1\n"
        "T4,25:10:00,25:10:00,S2,1\n"
        "T5,10:00:00,10:00:00,S1,1\n"
    ),
}

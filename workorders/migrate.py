from workorders.db import engine, init_db


def main():
    # До create_all модели импортируются внутри init_db
    init_db()
    print("DB created at:", engine.url.render_as_string(hide_password=True))


if __name__ == "__main__":
    main()

# run.py
from dotenv import load_dotenv
import atexit
import os
from uruoi import create_app, shutdown_app
basedir = os.path.abspath(os.path.dirname(__file__))
# 해당 디렉터리 안에 있는 '.env' 파일의 정확한 경로를 지정해 로드합니다.
dotenv_path = os.path.join(basedir, '.env')
load_dotenv(dotenv_path=dotenv_path)


app = create_app()
atexit.register(shutdown_app, app)

if __name__ == '__main__':
    host = os.getenv('FLASK_RUN_HOST', '127.0.0.1')
    port = int(os.getenv('FLASK_RUN_PORT', 5000))
    debug = app.config.get('DEBUG', False)
    # 리로더는 프로세스를 두 번 띄워 로컬 저장소와 구독이 중복되므로 끕니다.
    app.run(host=host, port=port, debug=debug, use_reloader=False)

# run.py
from dotenv import load_dotenv
import os
import logging
from minifeed import create_app
basedir = os.path.abspath(os.path.dirname(__file__))
# 해당 디렉터리 안에 있는 '.env' 파일의 정확한 경로를 지정해 로드합니다.
dotenv_path = os.path.join(basedir, '.env')
load_dotenv(dotenv_path=dotenv_path)

app = create_app()

if __name__ == '__main__':
    host = os.getenv('FLASK_RUN_HOST', '127.0.0.1')
    port = int(os.getenv('FLASK_RUN_PORT', 5000))
    debug = app.config.get('DEBUG', False)
    logging.info(f"FLASK_ENV={os.getenv('FLASK_ENV')} FEED_BACKEND={app.config['FEED_BACKEND']}")
    # 실시간 피드 스트림(SSE) 연결마다 요청 스레드를 하나씩 점유합니다.
    app.run(host=host, port=port, debug=debug, threaded=True)
